"""
Entry point for running toolgate as a module: python -m toolgate
"""

from toolgate.cli.commands import app

if __name__ == "__main__":
    app()

"""Configuration module for toolgate."""

from toolgate.config.loader import load_config, get_config_path, save_config
from toolgate.config.schema import AuditConfig, Config, SessionsConfig, ValidatorConfig

__all__ = [
    "AuditConfig",
    "Config",
    "SessionsConfig",
    "ValidatorConfig",
    "load_config",
    "get_config_path",
    "save_config",
]

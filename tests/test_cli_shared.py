import socket

from toolgate.cli.shared.network_utils import is_port_in_use, listen_url


def test_is_port_in_use_detects_bound_socket():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
        assert is_port_in_use("127.0.0.1", port)


def test_free_port_is_not_in_use():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    assert not is_port_in_use("127.0.0.1", port)


def test_listen_url_brackets_ipv6():
    assert listen_url("127.0.0.1", 8080) == "http://127.0.0.1:8080"
    assert listen_url("::1", 8080) == "http://[::1]:8080"

import logging

import pytest

from slowpost.logging_config import disable_logging
from .servers import SlowPostSinkServer, Socks4ProxyServer, TlsSinkServer


@pytest.fixture
def sink_server():
    server = SlowPostSinkServer()
    server.start()
    server.wait_ready()
    yield server
    server.stop()


@pytest.fixture
def server_factory():
    """
    Start servers with custom options.
    Usage: server_factory(SlowPostSinkServer, reset_after=200)
    """
    servers = []

    def _start(server_class, **kwargs):
        server = server_class(**kwargs)
        server.start()
        server.wait_ready()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.stop()


@pytest.fixture
def tls_server():
    server = TlsSinkServer()
    server.start()
    server.wait_ready()
    yield server
    server.stop()


@pytest.fixture
def socks_server():
    server = Socks4ProxyServer()
    server.start()
    server.wait_ready()
    yield server
    server.stop()


@pytest.fixture
def client_log(caplog):
    """Capture INFO and above from the slowpost loggers."""
    caplog.set_level(logging.INFO, logger="slowpost")
    return caplog


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    disable_logging()

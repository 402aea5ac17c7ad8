"""
Exceptions raised by slow-post.

Transport failures are plain OSError subclasses (refused, reset, TLS, DNS)
and are not wrapped.
"""


class SlowPostError(Exception):
    """Base class for slow-post errors."""


class ConfigError(SlowPostError, ValueError):
    """Invalid client configuration."""


class ProxyRejected(SlowPostError):
    """SOCKS4 proxy answered with a status other than 'request granted'."""

    def __init__(self, status):
        super().__init__(f"Proxy error, status code is 0x{status:x}")
        self.status = status


class RemoteClosed(SlowPostError):
    """Peer closed the connection in an orderly way (end of stream)."""

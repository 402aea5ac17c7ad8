"""
slow-post: asyncio-based stress-testing tool which uses slow HTTP POST.
"""
import logging

from .client import Phase, ClientState, SlowPostClient
from .config import ClientConfig
from .errors import ConfigError, ProxyRejected, RemoteClosed
from .pool import ClientPool

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    "ClientPool",
    "ClientState",
    "ConfigError",
    "Phase",
    "ProxyRejected",
    "RemoteClosed",
    "SlowPostClient",
]

# Silent unless the application enables a handler
logging.getLogger(__name__).addHandler(logging.NullHandler())

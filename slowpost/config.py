"""
Client configuration.

One ClientConfig is built from the command line and copied per client with
only the display name changed.
"""
import dataclasses
import re

from .errors import ConfigError

DEFAULT_PORT = 80
DEFAULT_CONCURRENCY = 25
DEFAULT_MIN_CHUNK_SIZE = 4
DEFAULT_MAX_CHUNK_SIZE = 16
DEFAULT_MIN_BODY_SIZE = DEFAULT_MAX_CHUNK_SIZE * 512
DEFAULT_MAX_BODY_SIZE = DEFAULT_MIN_BODY_SIZE * 4
DEFAULT_BODY_SEND_DELAY = 2.0
DEFAULT_CONNECTION_DELAY = 1.0
DEFAULT_PATH = "/"

# Hard failures (refused, reset, proxy rejection) wait this many times longer
PENALTY_FACTOR = 5

PROXY_RE = re.compile(r'^([\w.\-]+):(\d+)$')


def parse_proxy(value):
    """Parse a HOST:PORT proxy specification into a (host, port) tuple."""
    match = PROXY_RE.match(value)
    if not match:
        raise ConfigError("Please specify proxy in HOST:PORT format")
    port = int(match.group(2))
    if not 0 < port < 65536:
        raise ConfigError(f"Proxy port out of range: {port}")
    return match.group(1), port


def _check_header_value(label, value):
    """Header values go on the wire as single ASCII lines."""
    if not value.isascii() or "\r" in value or "\n" in value:
        raise ConfigError(f"{label} must be a single line of ASCII text: {value!r}")


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """Immutable settings for one slow POST client."""
    host: str
    name: str = "Client"
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH
    ssl: bool = False
    proxy: tuple | None = None
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    min_body_size: int = DEFAULT_MIN_BODY_SIZE
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    body_send_delay: float = DEFAULT_BODY_SEND_DELAY
    connection_delay: float = DEFAULT_CONNECTION_DELAY
    user_agent: str = ""
    crlf: bool = False

    def __post_init__(self):
        if not self.host:
            raise ConfigError("Target hostname is required")
        if not 0 < self.port < 65536:
            raise ConfigError(f"Port out of range: {self.port}")
        try:
            self.host.encode("idna")
        except UnicodeError:
            raise ConfigError(f"Invalid hostname: {self.host!r}") from None
        _check_header_value("Host", self.ascii_host)
        if not self.path.startswith("/"):
            raise ConfigError(f"Path must start with '/': {self.path!r}")
        _check_header_value("Path", self.path)
        _check_header_value("User-Agent", self.user_agent)
        if self.min_chunk_size < 1:
            raise ConfigError("min chunk size must be at least 1 byte")
        if self.min_chunk_size > self.max_chunk_size:
            raise ConfigError(
                f"min chunk size ({self.min_chunk_size}) is greater than "
                f"max chunk size ({self.max_chunk_size})")
        if self.min_body_size < 0:
            raise ConfigError("min body size must not be negative")
        if self.min_body_size > self.max_body_size:
            raise ConfigError(
                f"min body size ({self.min_body_size}) is greater than "
                f"max body size ({self.max_body_size})")
        if self.body_send_delay < 0 or self.connection_delay < 0:
            raise ConfigError("Delays must not be negative")
        if self.proxy is not None:
            # Accept lists from callers, store a hashable tuple
            object.__setattr__(self, "proxy", (self.proxy[0], int(self.proxy[1])))

    @property
    def penalty_delay(self):
        """Reconnect delay after refused/reset connections and proxy errors."""
        return self.connection_delay * PENALTY_FACTOR

    @property
    def ascii_host(self):
        """Host name in its ASCII (IDNA) form, as sent in headers and to the proxy."""
        return self.host.encode("idna").decode("ascii")

    @property
    def endpoint(self):
        """Address the transport connects to: the proxy if set, else the target."""
        return self.proxy or (self.host, self.port)

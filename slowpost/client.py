"""
Slow HTTP POST client.

Each SlowPostClient runs one connection at a time:

    CONNECTING -> [PROXY_HANDSHAKE] -> [TLS_HANDSHAKE] -> STREAMING -> RECONNECT_WAIT
         ^                                                                  |
         +------------------------------------------------------------------+

The request declares the whole body in Content-Length, then the body is
written a few bytes at a time. The next chunk goes out only after the
previous one has fully drained from the write buffer and body_send_delay
has elapsed. Every failure ends in RECONNECT_WAIT; there is no retry limit.
"""
import asyncio
import dataclasses
import enum
import random

from . import socks
from .errors import ProxyRejected, RemoteClosed
from .logging_config import ClientLogger
from .timer import Timer
from .transport import Transport

FILLER = b"A"


class Phase(enum.Enum):
    CONNECTING = "connecting"
    PROXY_HANDSHAKE = "proxy-handshake"
    TLS_HANDSHAKE = "tls-handshake"
    STREAMING = "streaming"
    RECONNECT_WAIT = "reconnect-wait"


@dataclasses.dataclass
class ClientState:
    """Mutable per-connection state, owned by exactly one client."""
    phase: Phase = Phase.CONNECTING
    body_size: int = 0
    remaining: bytearray = dataclasses.field(default_factory=bytearray)
    connected: bool = False

    def reset(self, body_size):
        """Start a new connection attempt with a full body of body_size bytes."""
        self.phase = Phase.CONNECTING
        self.body_size = body_size
        self.remaining = bytearray(FILLER * body_size)
        self.connected = False

    def take(self, size):
        """Remove up to size bytes from the front of the remaining body."""
        chunk = bytes(self.remaining[:size])
        del self.remaining[:size]
        return chunk

    @property
    def bytes_sent(self):
        return self.body_size - len(self.remaining)


class SlowPostClient:
    """One slow POST connection, reconnecting forever."""

    def __init__(self, config, transport_factory=Transport, rng=None):
        self.config = config
        self.state = ClientState()
        self.log = ClientLogger(config.name)
        self.transport = None
        self.reconnect_timer = Timer("reconnect")
        self.send_timer = Timer("send")
        self._transport_factory = transport_factory
        self._rng = rng or random.Random()
        self._session = None

    def __repr__(self):
        return f"<SlowPostClient {self.config.name!r} {self.state.phase.value}>"

    def connect(self):
        """Begin a connection attempt. Must be called with a running event loop."""
        self.reconnect_timer.cancel()
        if self._session is not None and not self._session.done():
            self._session.cancel()
        self.state.reset(self._draw(self.config.min_body_size, self.config.max_body_size))
        self._session = asyncio.get_running_loop().create_task(self._run())
        return self._session

    def reconnect(self, delay=None):
        """Enter RECONNECT_WAIT and schedule the next attempt."""
        self.send_timer.cancel()
        self.state.connected = False
        self.state.phase = Phase.RECONNECT_WAIT
        if delay is None:
            delay = self.config.connection_delay
        self.reconnect_timer.start(delay, self.connect)

    def stop(self):
        """Cancel timers and the running attempt. The client stays idle afterwards."""
        self.reconnect_timer.cancel()
        self.send_timer.cancel()
        if self._session is not None and not self._session.done():
            self._session.cancel()
        if self.transport is not None:
            self.transport.close()
            self.transport = None

    def request_head(self):
        """Request line and headers, terminated by the blank separator line."""
        config = self.config
        lines = [
            f"POST {config.path} HTTP/1.1",
            f"Host: {config.ascii_host}",
            "Content-Type: application/x-www-form-urlencoded",
        ]
        if config.user_agent:
            lines.append(f"User-Agent: {config.user_agent}")
        lines.append(f"Content-Length: {self.state.body_size}")
        eol = "\r\n" if config.crlf else "\n"
        return (eol.join(lines) + eol + eol).encode("ascii")

    def _draw(self, low, high):
        return self._rng.randint(low, high)

    def _progress(self):
        return f"{self.state.bytes_sent} of {self.state.body_size} bytes sent"

    async def _run(self):
        config = self.config
        transport = self.transport = self._transport_factory()
        try:
            await transport.connect(*config.endpoint)
            if config.proxy:
                self.state.phase = Phase.PROXY_HANDSHAKE
                await self._proxy_handshake()
            self._on_server_connect()
            if config.ssl:
                self.state.phase = Phase.TLS_HANDSHAKE
                await transport.start_tls(config.host)
            self.state.phase = Phase.STREAMING
            await self._stream()
        except ProxyRejected as exc:
            self.log.warning("%s", exc)
            self.reconnect(config.penalty_delay)
        except RemoteClosed:
            self.log.info("Connection closed, reconnecting (%s)", self._progress())
            self.reconnect()
        except OSError:
            if self.state.connected:
                self.log.warning("Connection dropped, reconnecting (%s)", self._progress())
            else:
                self.log.warning("Connection refused, reconnecting")
            self.reconnect(config.penalty_delay)
        else:
            self.log.info("Request completed, reconnecting")
            self.reconnect()
        finally:
            transport.close()
            if self.transport is transport:
                self.transport = None

    async def _proxy_handshake(self):
        self.transport.write(socks.encode_connect(self.config.ascii_host, self.config.port))
        reply = await self.transport.read_exactly(socks.REPLY_SIZE)
        status, _, _ = socks.decode_reply(reply)
        if status != socks.REQUEST_GRANTED:
            raise ProxyRejected(status)

    def _on_server_connect(self):
        self.state.connected = True
        self.log.info("Connected! Body size is %d", self.state.body_size)

    async def _stream(self):
        """Send headers and the paced body while watching for end of stream."""
        self.transport.write(self.request_head())

        body = asyncio.ensure_future(self._send_body())
        eof = asyncio.ensure_future(self.transport.wait_eof())
        try:
            await asyncio.wait((body, eof), return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (body, eof):
                if not task.done():
                    task.cancel()
            await asyncio.gather(body, eof, return_exceptions=True)

        if not body.cancelled():
            # body finished first (or failed): that decides the outcome
            body.result()
            return
        eof.result()
        raise RemoteClosed("Connection closed by server")

    async def _send_body(self):
        config = self.config
        while True:
            chunk = self.state.take(self._draw(config.min_chunk_size, config.max_chunk_size))
            if not chunk:
                return
            self.transport.write(chunk)
            await self.transport.drain()
            await self.send_timer.sleep(config.body_send_delay)

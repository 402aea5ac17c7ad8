import asyncio
import socket
import time

from slowpost.config import ClientConfig
from slowpost.errors import RemoteClosed


def make_config(**overrides):
    """Small, fast configuration for tests; overrides win."""
    params = dict(
        host='127.0.0.1',
        name='Client #1',
        port=80,
        min_chunk_size=10,
        max_chunk_size=10,
        min_body_size=100,
        max_body_size=100,
        body_send_delay=0,
        connection_delay=30,
    )
    params.update(overrides)
    return ClientConfig(**params)


def get_free_port():
    """
    Get a free port on localhost.
    Note: There's an inherent race condition between this function returning
    and the caller binding to the port. We use SO_REUSEADDR to mitigate this.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout=5.0, interval=0.01):
    """Poll predicate from inside the event loop. Returns its last value."""
    deadline = time.monotonic() + timeout
    while True:
        result = predicate()
        if result or time.monotonic() >= deadline:
            return result
        await asyncio.sleep(interval)


class FakeTransport:
    """
    Scripted in-memory transport that records every call in order.

    connect_error: exception raised by connect().
    proxy_reply: bytes served by read_exactly().
    fail_after: drain() raises ConnectionResetError once this many body
        bytes have been written.
    eof_after: the peer closes (end of stream) once this many body bytes
        have been written.
    """

    def __init__(self, connect_error=None, proxy_reply=b"", fail_after=None, eof_after=None):
        self.connect_error = connect_error
        self.proxy_reply = proxy_reply
        self.fail_after = fail_after
        self.eof_after = eof_after
        self.events = []
        self.write_times = []
        self.drain_times = []
        self.closed = False
        self._eof = asyncio.Event()

    @property
    def writes(self):
        return [payload for name, payload in self.events if name == "write"]

    @property
    def head_writes(self):
        return [w for w in self.writes if w.startswith(b"POST ")]

    @property
    def body_writes(self):
        writes = self.writes
        for index, data in enumerate(writes):
            if data.startswith(b"POST "):
                return writes[index + 1:]
        return []

    async def connect(self, host, port):
        self.events.append(("connect", (host, port)))
        if self.connect_error is not None:
            raise self.connect_error

    def write(self, data):
        self.events.append(("write", bytes(data)))
        self.write_times.append(time.monotonic())

    async def drain(self):
        self.events.append(("drain", None))
        sent = sum(len(w) for w in self.body_writes)
        if self.fail_after is not None and sent >= self.fail_after:
            raise ConnectionResetError("Connection reset by peer")
        if self.eof_after is not None and sent >= self.eof_after:
            self._eof.set()
        await asyncio.sleep(0)
        self.drain_times.append(time.monotonic())

    async def read_exactly(self, size):
        data, self.proxy_reply = self.proxy_reply[:size], self.proxy_reply[size:]
        if len(data) < size:
            raise RemoteClosed("short read")
        return data

    async def start_tls(self, server_hostname):
        self.events.append(("tls", server_hostname))

    async def wait_eof(self):
        await self._eof.wait()

    def close(self):
        self.closed = True


class TransportRecorder:
    """Transport factory handing out FakeTransports; one per connection attempt."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.transports = []

    def __call__(self):
        transport = FakeTransport(**self.kwargs)
        self.transports.append(transport)
        return transport

    @property
    def last(self):
        return self.transports[-1]


def received_body(server, index=0):
    """Body bytes the server got on its index-th connection so far."""
    connections = server.snapshot()
    if len(connections) <= index:
        return b""
    return connections[index].body()

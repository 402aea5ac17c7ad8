"""
Byte-stream transport over asyncio streams.

A Transport wraps one TCP connection (possibly to a SOCKS proxy) and can be
upgraded to TLS in place. The write buffer high-water mark is zero, so
drain() only returns once every queued byte has been handed to the socket.
"""
import asyncio
import ssl

from .errors import RemoteClosed

READ_SIZE = 4096


def default_ssl_context():
    """Client TLS context without certificate or hostname verification."""
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class Transport:
    """One connection attempt's byte stream."""

    def __init__(self, ssl_context=None):
        self.ssl_context = ssl_context
        self.reader = None
        self.writer = None

    async def connect(self, host, port):
        self.reader, self.writer = await asyncio.open_connection(host, port)
        self._limit_write_buffer()

    def write(self, data):
        self.writer.write(data)

    async def drain(self):
        """Wait until the write buffer is empty."""
        await self.writer.drain()

    async def read_exactly(self, size):
        """Read exactly size bytes; a short read means the peer closed."""
        try:
            return await self.reader.readexactly(size)
        except asyncio.IncompleteReadError as exc:
            raise RemoteClosed(
                f"Connection closed after {len(exc.partial)} of {size} bytes") from exc

    async def start_tls(self, server_hostname):
        """Upgrade the open stream to TLS (client side)."""
        context = self.ssl_context or default_ssl_context()
        # The TLS layer pauses with the socket transport below it, which
        # already has a zero high-water mark
        await self.writer.start_tls(context, server_hostname=server_hostname)

    async def wait_eof(self):
        """
        Discard whatever the server sends until it closes the stream.

        Returns on end of stream; resets surface as ConnectionError.
        """
        while True:
            data = await self.reader.read(READ_SIZE)
            if not data:
                return

    def close(self):
        if self.writer is not None:
            self.writer.close()
            self.writer = None
        self.reader = None

    def _limit_write_buffer(self):
        self.writer.transport.set_write_buffer_limits(high=0)

"""
End-to-end tests against local threaded servers over real TCP sockets.
"""
import asyncio

import pytest

from slowpost import socks
from slowpost.client import Phase, SlowPostClient
from slowpost.transport import Transport
from .servers import SlowPostSinkServer, Socks4ProxyServer
from .utils import get_free_port, make_config, received_body, wait_until


def test_full_body_arrives_intact(sink_server, client_log):
    config = make_config(port=sink_server.actual_port, body_send_delay=0.01)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        ok = ok and await wait_until(lambda: len(received_body(sink_server)) == 100)
        client.stop()
        return client, ok

    client, ok = asyncio.run(scenario())
    assert ok
    record = sink_server.snapshot()[0]
    assert b"Content-Length: 100\n" in record.head()
    assert record.body() == b"A" * 100
    assert "Client #1: Connected! Body size is 100" in client_log.messages
    assert "Client #1: Request completed, reconnecting" in client_log.messages
    assert client.reconnect_timer.delay == config.connection_delay


def test_full_body_arrives_over_tls(tls_server, client_log):
    """The TLS upgrade keeps the drain-then-delay pacing working to the end."""
    config = make_config(port=tls_server.actual_port, ssl=True, body_send_delay=0.01)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        ok = ok and await wait_until(lambda: len(received_body(tls_server)) == 100)
        client.stop()
        return client, ok

    client, ok = asyncio.run(scenario())
    assert ok
    assert client.state.bytes_sent == 100
    assert "Client #1: Request completed, reconnecting" in client_log.messages
    assert client.reconnect_timer.delay == config.connection_delay
    record = tls_server.snapshot()[0]
    assert record.head().startswith(b"POST / HTTP/1.1\n")
    assert record.body() == b"A" * 100


def test_body_is_paced(sink_server):
    """Three chunks with 0.1s between them take at least 0.2s to arrive."""
    config = make_config(port=sink_server.actual_port, min_body_size=30,
                         max_body_size=30, body_send_delay=0.1)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        ok = ok and await wait_until(lambda: len(received_body(sink_server)) == 30)
        client.stop()
        return ok

    assert asyncio.run(scenario())
    record = sink_server.snapshot()[0]
    assert record.body() == b"A" * 30
    assert record.recv_times[-1] - record.recv_times[0] >= 0.18


def test_write_buffer_high_water_mark_is_zero(sink_server):
    async def scenario():
        transport = Transport()
        await transport.connect('127.0.0.1', sink_server.actual_port)
        limits = transport.writer.transport.get_write_buffer_limits()
        transport.close()
        return limits

    assert asyncio.run(scenario()) == (0, 0)


def test_server_reset_is_penalised(server_factory, client_log):
    server = server_factory(SlowPostSinkServer, reset_after=150)
    config = make_config(port=server.actual_port, min_body_size=1000,
                         max_body_size=1000, body_send_delay=0.01, connection_delay=20)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        client.stop()
        return client, ok

    client, ok = asyncio.run(scenario())
    assert ok
    dropped = [m for m in client_log.messages if "Connection dropped, reconnecting" in m]
    assert len(dropped) == 1
    assert dropped[0].endswith(f"({client.state.bytes_sent} of 1000 bytes sent)")
    assert client.reconnect_timer.delay == 100


def test_server_close_uses_base_delay(server_factory, client_log):
    server = server_factory(SlowPostSinkServer, close_after=150)
    config = make_config(port=server.actual_port, min_body_size=1000,
                         max_body_size=1000, body_send_delay=0.01, connection_delay=20)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        client.stop()
        return client, ok

    client, ok = asyncio.run(scenario())
    assert ok
    closed = [m for m in client_log.messages if "Connection closed, reconnecting" in m]
    assert len(closed) == 1
    assert client.reconnect_timer.delay == 20


def test_refused_connections_retry_forever(client_log):
    config = make_config(port=get_free_port(), connection_delay=0.01)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(
            lambda: client_log.messages.count("Client #1: Connection refused, reconnecting") >= 3)
        delay = client.reconnect_timer.delay
        client.stop()
        return ok, delay

    ok, delay = asyncio.run(scenario())
    assert ok
    assert delay == pytest.approx(0.05)


def test_socks_tunnel(socks_server, client_log):
    config = make_config(host="target.test", port=8080,
                         proxy=("127.0.0.1", socks_server.actual_port),
                         body_send_delay=0.01)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        ok = ok and await wait_until(lambda: len(received_body(socks_server)) == 100)
        client.stop()
        return ok

    assert asyncio.run(scenario())
    record = socks_server.snapshot()[0]
    assert record.socks_request == socks.encode_connect("target.test", 8080)
    assert record.head().startswith(b"POST / HTTP/1.1\nHost: target.test\n")
    assert record.body() == b"A" * 100


def test_socks_rejection_sends_nothing(server_factory, client_log):
    server = server_factory(Socks4ProxyServer, status=0x5C)
    config = make_config(proxy=("127.0.0.1", server.actual_port), connection_delay=20)

    async def scenario():
        client = SlowPostClient(config)
        client.connect()
        ok = await wait_until(lambda: client.state.phase is Phase.RECONNECT_WAIT)
        client.stop()
        return client, ok

    client, ok = asyncio.run(scenario())
    assert ok
    assert "Client #1: Proxy error, status code is 0x5c" in client_log.messages
    assert client.reconnect_timer.delay == 100
    assert bytes(server.snapshot()[0].data) == b""

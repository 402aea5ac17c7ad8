"""
SOCKS4a CONNECT request/reply codec.

The client never resolves the target itself: the request carries the
placeholder address 0.0.0.1 and appends the hostname (SOCKS4a extension),
so the proxy performs the lookup.
"""
import struct

SOCKS_VERSION = 4
CMD_CONNECT = 1
REQUEST_GRANTED = 0x5A

# 0.0.0.x with x != 0 tells the proxy to resolve the trailing hostname
SOCKS4A_PLACEHOLDER_IP = 1

REPLY_SIZE = 8

_HEADER = struct.Struct("!BBHI")
_REPLY = struct.Struct("!xBH4s")


def encode_connect(host, port):
    """Build a SOCKS4a CONNECT request for host:port."""
    return (_HEADER.pack(SOCKS_VERSION, CMD_CONNECT, port, SOCKS4A_PLACEHOLDER_IP)
            + b"\x00"                         # empty user id
            + host.encode("idna") + b"\x00")


def decode_reply(data):
    """
    Decode an 8-byte SOCKS4 reply.

    Returns (status, bound_port, bound_address). Only the status is used by
    the client.
    """
    if len(data) != REPLY_SIZE:
        raise ValueError(f"SOCKS4 reply must be {REPLY_SIZE} bytes, got {len(data)}")
    status, port, address = _REPLY.unpack(data)
    return status, port, address

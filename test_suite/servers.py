import os
import socket
import ssl
import struct
import sys
import threading
import select
import time

BACKLOG = 512

# Self-signed certificate and key for CN=localhost
CERT_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "localhost.pem")


class ReceivedConnection:
    """Everything one accepted connection delivered, with arrival times."""

    def __init__(self):
        self.data = bytearray()
        self.recv_times = []
        self.socks_request = None
        self.closed = False

    def head(self):
        """Request head (up to and including the blank line), or None if incomplete."""
        data = bytes(self.data)
        for separator in (b"\r\n\r\n", b"\n\n"):
            index = data.find(separator)
            if index != -1:
                return data[:index + len(separator)]
        return None

    def body(self):
        head = self.head()
        if head is None:
            return b""
        return bytes(self.data[len(head):])


class BaseServer(threading.Thread):
    def __init__(self, host='127.0.0.1', port=0):
        super().__init__()
        self.host = host
        self.port = port
        self.actual_port = 0
        self.running = True
        self.ready = threading.Event()
        self.sock = None
        self.daemon = True
        self.lock = threading.Lock()
        self.connections = []

    def stop(self):
        self.running = False
        if self.sock:
            try:
                self.sock.close()
            except OSError:
                pass
        self.join(timeout=2)

    def wait_ready(self, timeout=5):
        return self.ready.wait(timeout)

    def run(self):
        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.sock.bind((self.host, self.port))
            self.actual_port = self.sock.getsockname()[1]
            self.sock.listen(BACKLOG)
            self.ready.set()

            while self.running:
                try:
                    r, _, _ = select.select([self.sock], [], [], 0.5)
                    if not r:
                        continue

                    conn, addr = self.sock.accept()
                    record = ReceivedConnection()
                    with self.lock:
                        self.connections.append(record)
                    client_thread = threading.Thread(target=self.handle_client, args=(conn, record))
                    client_thread.daemon = True
                    client_thread.start()
                except OSError:
                    break
        except Exception as e:
            print(f"{type(self).__name__} error: {e}", file=sys.stderr)
        finally:
            if self.sock:
                self.sock.close()

    def snapshot(self):
        """Copy of the connection records, safe to inspect from another thread."""
        with self.lock:
            return list(self.connections)

    def handle_client(self, conn, record):
        raise NotImplementedError


class SlowPostSinkServer(BaseServer):
    """
    Accepts slow POST requests, never answers, records every received byte.

    close_after: after that many bytes, half-close (FIN) and keep discarding.
    reset_after: after that many bytes, abort the connection with RST.
    """
    def __init__(self, host='127.0.0.1', port=0, close_after=None, reset_after=None):
        super().__init__(host, port)
        self.close_after = close_after
        self.reset_after = reset_after

    def handle_client(self, conn, record):
        # The handler runs until the CLIENT closes the connection
        try:
            self.receive(conn, record)
        except (OSError, ConnectionError, BrokenPipeError):
            pass  # Expected when client disconnects
        finally:
            record.closed = True
            conn.close()

    def receive(self, conn, record):
        half_closed = False
        while True:
            data = conn.recv(4096)
            if not data:
                break
            with self.lock:
                record.data += data
                record.recv_times.append(time.monotonic())
                received = len(record.data)

            if self.reset_after is not None and received >= self.reset_after:
                conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack('ii', 1, 0))
                break
            if self.close_after is not None and received >= self.close_after and not half_closed:
                conn.shutdown(socket.SHUT_WR)
                half_closed = True


class Socks4ProxyServer(SlowPostSinkServer):
    """
    Minimal SOCKS4/4a endpoint: answers CONNECT with a fixed status and, when
    granted, records the tunnelled bytes itself instead of relaying them.
    """
    def __init__(self, host='127.0.0.1', port=0, status=0x5A):
        super().__init__(host, port)
        self.status = status

    def handle_client(self, conn, record):
        try:
            request = self.read_request(conn)
            if request is None:
                return
            with self.lock:
                record.socks_request = request
            conn.sendall(struct.pack('!BBH4s', 0, self.status, 0, b'\x00\x00\x00\x00'))
            if self.status == 0x5A:
                self.receive(conn, record)
            else:
                # Wait for the client to give up
                while conn.recv(4096):
                    pass
        except (OSError, ConnectionError, BrokenPipeError):
            pass
        finally:
            record.closed = True
            conn.close()

    def read_request(self, conn):
        """Read header, user id and (4a) hostname; returns the raw request bytes."""
        request = b""
        # 8-byte header followed by NUL-terminated user id and hostname
        while request.count(b"\x00", 8) < 2:
            chunk = conn.recv(1)
            if not chunk:
                return None
            request += chunk
        return request


class TlsSinkServer(SlowPostSinkServer):
    """SlowPostSinkServer behind TLS, using the self-signed localhost.pem."""
    def __init__(self, host='127.0.0.1', port=0, certfile=CERT_FILE):
        super().__init__(host, port)
        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(certfile)

    def handle_client(self, conn, record):
        try:
            conn.settimeout(5)
            conn = self.context.wrap_socket(conn, server_side=True)
            conn.settimeout(None)
        except (OSError, ssl.SSLError):
            conn.close()
            record.closed = True
            return
        super().handle_client(conn, record)

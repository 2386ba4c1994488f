"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket and turns its byte stream into complete
HTTP request messages, one per read_request() call.

=============================================================================
LIFECYCLE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──┬──► KEEP_ALIVE ──► READING ...
                                                 │
                                                 └──► CLOSING ──► CLOSED

The first request is awaited for ``timeout`` seconds; every later one on
the same connection for ``keep_alive_timeout`` seconds. An idle keep-alive
connection simply ends (read_request() returns None); a client that
connects and never sends its first request gets 408.

=============================================================================
FRAMING
=============================================================================

    GET /users HTTP/1.1\\r\\n
    Content-Length: 5\\r\\n
    \\r\\n                   ◄── header block ends here
    hello                  ◄── exactly Content-Length bytes of body
    GET /next HTTP/1.1 ... ◄── pipelined: stays buffered for the next call

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.request import HTTPParseError
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client socket plus the read buffer and bookkeeping for it.

    Use as a context manager so the socket is always released:

        with Connection(sock, addr) as conn:
            raw = conn.read_request()
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    @property
    def idle_time(self) -> float:
        return time.time() - self.last_activity

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request message.

        Returns:
            The raw message, or None when the client closed the connection
            or an idle keep-alive connection timed out.

        Raises:
            HTTPParseError: 408 when the first request never arrives,
                413 when the message exceeds max_request_size, 400 for a
                malformed Content-Length.
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEADER_TERMINATOR not in self._buffer:
                if not self._fill():
                    return None

            header_end = self._buffer.find(HEADER_TERMINATOR)
            body_start = header_end + len(HEADER_TERMINATOR)
            content_length = self._content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise HTTPParseError("Request too large", HTTPStatus.PAYLOAD_TOO_LARGE)

            while len(self._buffer) - body_start < content_length:
                if not self._fill():
                    logger.debug(f"[{self.id}] Client closed mid-body")
                    return None

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise HTTPParseError("Request read timeout", HTTPStatus.REQUEST_TIMEOUT)
        finally:
            self.socket.settimeout(self.timeout)

        request_end = body_start + content_length
        message, self._buffer = self._buffer[:request_end], self._buffer[request_end:]

        self.requests_handled += 1
        self.state = ConnectionState.PROCESSING
        return message

    def _fill(self) -> bool:
        """Append one recv() worth of bytes; False once the peer is gone."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False

        if not chunk:
            return False

        self._buffer += chunk
        self.last_activity = time.time()

        if HEADER_TERMINATOR not in self._buffer and len(self._buffer) > self.max_request_size:
            raise HTTPParseError("Request headers too large", HTTPStatus.PAYLOAD_TOO_LARGE)
        return True

    @staticmethod
    def _content_length(header_block: bytes) -> int:
        for line in header_block.decode("latin-1").split("\r\n")[1:]:
            name, _, value = line.partition(":")
            if name.strip().lower() != "content-length":
                continue
            try:
                length = int(value.strip())
            except ValueError:
                raise HTTPParseError(f"Invalid Content-Length: {value.strip()}")
            if length < 0:
                raise HTTPParseError(f"Invalid Content-Length: {length}")
            return length
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """Send all of ``data``; False if the client has gone away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.time()
        return True

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Half-close, drain what the client still sends, then release the
        descriptor. Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} requests")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

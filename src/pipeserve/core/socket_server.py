"""
=============================================================================
LISTENING SOCKET
=============================================================================

Owns the listening TCP socket: bind, listen, accept, hand off.

    start(on_connection)
    │
    ├── socket(AF_INET, SOCK_STREAM)
    │     SO_REUSEADDR   restart without "Address already in use"
    │     TCP_NODELAY    small JSON responses go out immediately
    │     timeout 1.0 s  accept() wakes up to notice shutdown()
    ├── bind + listen(backlog)
    ├── SIGINT / SIGTERM → shutdown()        (main thread only)
    │
    └── loop while running:
            accept() → Connection(...) → on_connection(conn)

on_connection must return quickly; the HTTP server queues the connection
on its thread pool and returns.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection

logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port) once listening, else the configured one.
        With ``port=0`` this is where the OS-assigned port shows up.
        """
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def _setup_signals(self) -> None:
        # signal.signal() only works on the main thread; an embedded or
        # test server is stopped with shutdown() instead.
        if threading.current_thread() is not threading.main_thread():
            return

        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, on_signal)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # RUN
    # =========================================================================

    def start(self, on_connection: Callable[[Connection], None]) -> None:
        """
        Bind, listen and run the accept loop until shutdown().

        Raises:
            OSError: When the address cannot be bound.
        """
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self.address
        logger.info(f"Listening on {host}:{port}")
        self._ready.set()

        try:
            self._accept_loop(on_connection)
        finally:
            self._cleanup()

    def _accept_loop(self, on_connection: Callable[[Connection], None]) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted {client_address[0]}:{client_address[1]}")
            on_connection(Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            ))

    def shutdown(self) -> None:
        """Ask the accept loop to stop; returns immediately."""
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self) -> None:
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready.clear()
        logger.info("Socket server stopped")

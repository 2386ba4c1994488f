"""
=============================================================================
HTTP SERVER
=============================================================================

Glues the transport (core/) to the application (a Dispatcher built by
create_app) and owns the keep-alive loop.

=============================================================================
ONE CONNECTION
=============================================================================

    accept thread                 worker thread
    ─────────────                 ──────────────────────────────────────────
    SocketServer.accept()
        │
        └─► ThreadPool.submit ──► _process_connection(conn)
                                    │
                                    └─ loop:
                                         raw   = conn.read_request()   None → stop
                                         req   = parser.parse(raw)     HTTPParseError → envelope, stop
                                         resp  = app(req)              never raises
                                         Connection / Keep-Alive headers
                                         conn.send_response(resp)      failed → stop
                                         keep-alive? → next request : stop

Requests on one connection are handled strictly one after another, so
responses go back in request order.

=============================================================================
TRANSPORT ERRORS
=============================================================================

Errors raised before there is an HTTPRequest (bad request line, oversized
message, read timeout, unsupported version) are answered here with the
same JSON failure envelope the application uses, plus
``Connection: close``:

    HTTP/1.1 413 Payload Too Large
    {"success": false, "message": "Request too large"}

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .app import create_app
from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .dispatcher import Dispatcher
from .http.request import HTTPParseError, RequestParser
from .http.response import failure
from .http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class HTTPServer:
    """
    Args:
        config: Transport and application settings; validated here.
        app: The request handler. Built with create_app(config) when omitted.

    Raises:
        ValueError: When the config is invalid.

    Example:
        server = HTTPServer(ServerConfig(port=3000))
        server.run()          # blocks until SIGINT/SIGTERM or shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None, app: Optional[Dispatcher] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.app = app if app is not None else create_app(self.config)

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._running = False

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, configure_logging: bool = True) -> None:
        """Serve until shutdown() or a termination signal."""
        if configure_logging:
            self._setup_logging()

        self._running = True
        self._thread_pool.start()
        self._print_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Stop accepting connections; run() returns once workers finish."""
        self._socket_server.shutdown()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        logging.getLogger("pipeserve").setLevel(level)

    def _print_banner(self) -> None:
        logger.info(
            f"{self.config.server_name} on http://{self.config.host}:{self.config.port} "
            f"({self.config.min_workers}-{self.config.max_workers} workers)"
        )
        if logger.isEnabledFor(logging.DEBUG):
            self.app.router.print_routes()

    def _shutdown(self) -> None:
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        self.app.close()
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            block=False,
            on_drop=lambda: self._reject(conn, "waited too long for a worker"),
        )
        if not submitted:
            self._reject(conn, "worker queue full")

    def _reject(self, conn: Connection, reason: str) -> None:
        logger.warning(f"[{conn.id}] Rejecting {conn.client_ip}: {reason}")
        self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
        conn.close()

    def _process_connection(self, conn: Connection) -> None:
        with conn:
            while self._running:
                try:
                    raw = conn.read_request()
                    if raw is None:
                        break
                    request = self._parser.parse(raw, conn.address)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Rejected request from {conn.client_ip}: {e}")
                    self._send_error(conn, HTTPStatus(e.status_code), str(e))
                    break

                response = self.app(request)

                keep_alive = self.config.keep_alive and request.is_keep_alive and self._running
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                if not conn.send_response(response.to_bytes(self.config.server_name)):
                    break
                if not keep_alive:
                    break

                conn.set_keep_alive()

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str) -> None:
        response = failure(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HTTPServer.run()        logging, thread pool, accept loop (blocking)
# HTTPServer.shutdown()   stop from another thread or a signal
# _process_connection     keep-alive loop, one worker per connection
# _send_error             transport errors in the JSON failure envelope
# =============================================================================

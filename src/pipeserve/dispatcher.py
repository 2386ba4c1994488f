"""
=============================================================================
DISPATCHER
=============================================================================

Turns one HTTPRequest into one HTTPResponse: global middleware, route match,
route middleware, handler, all as a single linear run.

=============================================================================
REQUEST FLOW
=============================================================================

    Dispatcher.handle(request)
    │
    │  global pipeline   Logging → PrettyJSON → CORS → RequestId
    │        │                  ▲
    │        ▼                  │ normal response, 500 included
    │  _guarded_dispatch(request)
    │  │
    │  │  try: ────────────────────────────────────────────────────────────┐
    │  │                                                                   │
    │  │    router.match() ──► route pipeline  Auth → RateLimit ──► handler│
    │  │          │                                                        │
    │  │          └── no match ──► GET outside API prefix + fallback?      │
    │  │                            ├── yes → SPA asset / index.html       │
    │  │                            └── no  → 404 {message: "路由不存在"}   │
    │  │                                                                   │
    │  │  except Exception: ◄──────────────────────────────────────────────┘
    │  │      log with traceback
    │  │      500 {success: false, message, requestId?}
    │  ▼
    │  HEAD: body dropped, Content-Length kept
    ▼
    response

=============================================================================
ONE ERROR BOUNDARY
=============================================================================

Handlers report recoverable problems themselves (400, 404). Anything they
or the route middleware raise is caught exactly once, as the innermost
global stage, so the access log, CORS and request-id stages all see the
500 as an ordinary response. A failure inside a global stage itself has no
inner stage left to catch it and is translated by handle() instead, without
those headers.

=============================================================================
"""

import logging
from typing import Callable, Iterable, List, Optional, Protocol

from .http.request import HTTPRequest, HTTPParseError
from .http.response import HTTPResponse, failure, internal_error, not_found
from .http.router import Router
from .http.status_codes import HTTPStatus
from .middleware.base import Middleware, MiddlewarePipeline

logger = logging.getLogger(__name__)


ROUTE_NOT_FOUND = "路由不存在"
INTERNAL_ERROR = "服务器内部错误"


class FallbackHandler(Protocol):
    def handle(self, request: HTTPRequest) -> Optional[HTTPResponse]:
        ...


class Dispatcher:
    """
    Args:
        router: Route table.
        middleware: Global middleware, outermost first.
        fallback: Handler for unmatched non-API GET/HEAD requests
            (SPAFallbackHandler); None disables the fallback.
        api_prefix: Paths under this prefix never reach the fallback.
    """

    def __init__(
        self,
        router: Router,
        middleware: Optional[Iterable[Middleware]] = None,
        fallback: Optional[FallbackHandler] = None,
        api_prefix: str = "/api",
    ):
        self.router = router
        self.pipeline = MiddlewarePipeline(middleware)
        self.fallback = fallback
        self.api_prefix = api_prefix.rstrip("/")
        self._on_close: List[Callable[[], None]] = []

    def use(self, *middleware: Middleware) -> "Dispatcher":
        """Append global middleware (innermost so far)."""
        self.pipeline.use(*middleware)
        return self

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register cleanup for close(), e.g. disposing a database engine."""
        self._on_close.append(callback)

    def close(self) -> None:
        """Run cleanup callbacks, most recently registered first."""
        while self._on_close:
            self._on_close.pop()()

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Run the full pipeline; never raises."""
        try:
            response = self.pipeline.run(request, self._guarded_dispatch)
        except Exception as e:
            response = self._translate_error(request, e)

        if request.method == "HEAD" and response.body:
            response.headers["Content-Length"] = str(len(response.body))
            response.body = b""
        return response

    # =========================================================================
    # INNERMOST GLOBAL STAGE
    # =========================================================================

    def _guarded_dispatch(self, request: HTTPRequest) -> HTTPResponse:
        try:
            return self._dispatch(request)
        except Exception as e:
            return self._translate_error(request, e)

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        match = self.router.match(request.method, request.path)

        if match is None:
            return self._unmatched(request)

        request.path_params = match.params
        return MiddlewarePipeline(match.middleware).run(request, match.handler)

    def _unmatched(self, request: HTTPRequest) -> HTTPResponse:
        if (
            self.fallback is not None
            and request.method in ("GET", "HEAD")
            and not self.is_api_path(request.path)
        ):
            response = self.fallback.handle(request)
            if response is not None:
                return response

        return not_found(ROUTE_NOT_FOUND, path=request.path)

    def is_api_path(self, path: str) -> bool:
        if not self.api_prefix:
            return False
        return path == self.api_prefix or path.startswith(self.api_prefix + "/")

    # =========================================================================
    # ERROR BOUNDARY
    # =========================================================================

    def _translate_error(self, request: HTTPRequest, error: Exception) -> HTTPResponse:
        request_id = request.request_id

        if isinstance(error, HTTPParseError):
            logger.info(f"Bad request on {request.method} {request.path}: {error}")
            response = failure(HTTPStatus(error.status_code), str(error))
        else:
            logger.exception(f"Unhandled error on {request.method} {request.path}: {error}")
            extra = {"requestId": request_id} if request_id else {}
            response = internal_error(str(error) or INTERNAL_ERROR, **extra)

        if request_id:
            response.headers["X-Request-ID"] = request_id
        return response

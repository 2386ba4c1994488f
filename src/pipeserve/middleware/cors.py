"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

Lets the browser client on another origin (a Vite dev server on :5173, for
instance) call this API.

=============================================================================
SIMPLE VS PREFLIGHTED REQUESTS
=============================================================================

    GET /users                         PUT /users/2 (Content-Type: json)
    Origin: http://localhost:5173      Origin: http://localhost:5173
            │                                  │
            │                                  ▼
            │                          OPTIONS /users/2      ← preflight
            │                          Access-Control-Request-Method: PUT
            │                                  │
            │                          204 No Content
            │                          Access-Control-Allow-Methods: ...
            │                                  │
            ▼                                  ▼
    200 + Access-Control-Allow-Origin  PUT /users/2 → 200 + Allow-Origin

Preflights are answered here and never reach the router, so no route needs
an OPTIONS handler.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, no_content


@dataclass
class CORSConfig:
    """
    CORS policy. Defaults mirror a permissive development setup: any
    origin, the usual REST methods, and the headers the client sends.
    """
    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(
        default_factory=lambda: ["GET", "HEAD", "PUT", "POST", "DELETE", "PATCH"]
    )
    allow_headers: List[str] = field(
        default_factory=lambda: ["Content-Type", "Authorization", "X-Requested-With"]
    )
    expose_headers: List[str] = field(default_factory=lambda: ["X-Request-ID"])
    allow_credentials: bool = False
    max_age: int = 86400


class CORSMiddleware(Middleware):
    """Adds Access-Control-* headers and answers preflight requests."""

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        origin = request.get_header("origin")

        if request.method == "OPTIONS" and request.get_header("access-control-request-method"):
            return self._handle_preflight(request, origin)

        response = next(request)
        self._add_cors_headers(response, origin)
        return response

    def _handle_preflight(self, request: HTTPRequest, origin: str) -> HTTPResponse:
        response = no_content()
        self._add_cors_headers(response, origin)

        response.headers["Access-Control-Allow-Methods"] = ", ".join(self.config.allow_methods)

        requested = request.get_header("access-control-request-headers")
        if requested:
            # Echo back what the browser asked for when the policy is open
            allowed = requested if "*" in self.config.allow_headers else ", ".join(self.config.allow_headers)
            response.headers["Access-Control-Allow-Headers"] = allowed

        response.headers["Access-Control-Max-Age"] = str(self.config.max_age)
        return response

    def _add_cors_headers(self, response: HTTPResponse, origin: str) -> None:
        allowed_origin = self._resolve_origin(origin)
        if allowed_origin is None:
            return

        response.headers["Access-Control-Allow-Origin"] = allowed_origin

        if self.config.allow_credentials:
            response.headers["Access-Control-Allow-Credentials"] = "true"

        if self.config.expose_headers:
            response.headers["Access-Control-Expose-Headers"] = ", ".join(self.config.expose_headers)

        if allowed_origin != "*":
            vary = response.headers.get("Vary", "")
            if "Origin" not in vary:
                response.headers["Vary"] = f"{vary}, Origin".lstrip(", ")

    def _resolve_origin(self, origin: str) -> Optional[str]:
        """
        Value for Access-Control-Allow-Origin, or None to send no CORS
        headers at all.

        With credentials, "*" is not allowed by browsers, so the request
        origin is echoed instead.
        """
        if "*" in self.config.allow_origins:
            if self.config.allow_credentials and origin:
                return origin
            return "*"
        if origin in self.config.allow_origins:
            return origin
        return None

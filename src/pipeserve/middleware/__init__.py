"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting stages that wrap route handlers.

Global stages, outermost first (installed on the Dispatcher):

    LoggingMiddleware       access log, timing
    PrettyJSONMiddleware    ?pretty indentation
    CORSMiddleware          Access-Control-* headers, preflight
    RequestIdMiddleware     X-Request-ID + request.context["request_id"]

Route-specific stages (installed on a Router group or a single route):

    AuthMiddleware          401 unless the CredentialVerifier accepts
    RateLimitMiddleware     429 once the sliding window is full

=============================================================================
"""

from .base import (
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    FunctionMiddleware,
    function_middleware,
)
from .logging import LoggingMiddleware, RequestLog
from .pretty_json import PrettyJSONMiddleware
from .cors import CORSMiddleware, CORSConfig
from .request_id import RequestIdMiddleware, REQUEST_ID_KEY
from .auth import (
    AuthMiddleware,
    AuthenticationError,
    CredentialVerifier,
    Principal,
    StaticTokenVerifier,
    PRINCIPAL_KEY,
)
from .rate_limit import RateLimitMiddleware, forwarded_for_key

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "FunctionMiddleware",
    "function_middleware",

    "LoggingMiddleware",
    "RequestLog",
    "PrettyJSONMiddleware",
    "CORSMiddleware",
    "CORSConfig",
    "RequestIdMiddleware",
    "REQUEST_ID_KEY",

    "AuthMiddleware",
    "AuthenticationError",
    "CredentialVerifier",
    "Principal",
    "StaticTokenVerifier",
    "PRINCIPAL_KEY",

    "RateLimitMiddleware",
    "forwarded_for_key",
]

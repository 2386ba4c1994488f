"""
=============================================================================
RATE LIMIT GATE
=============================================================================

Route-specific middleware in front of a SlidingWindowRateLimiter.

    GET /limited  (x-forwarded-for: 10.0.0.7)
        │
        ▼
    key_func(request) ──► "10.0.0.7"
        │
        ▼
    limiter.check_and_record("10.0.0.7", limit=5, window_ms=60000)
        │
        ├── True  ──► next(request) + X-RateLimit-Limit / -Remaining
        │
        └── False ──► 429 {"success": false, "message": "请求过于频繁，请稍后再试"}
                      Retry-After: <seconds until the oldest entry expires>

The limiter is passed in, not created here, so several routes can share
one record of client activity and tests can drive it with a fake clock.

=============================================================================
KEYING
=============================================================================

The default key is the ``x-forwarded-for`` header, or "unknown" when it is
absent. The header is client-controlled and spoofable; behind a trusted
proxy that overwrites it this is fine, otherwise supply a ``key_func``.

=============================================================================
"""

import math
from typing import Callable, Optional

from .base import Middleware, NextHandler
from ..core.rate_limiter import SlidingWindowRateLimiter
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, too_many_requests


RATE_LIMITED = "请求过于频繁，请稍后再试"


def forwarded_for_key(request: HTTPRequest) -> str:
    return request.get_header("x-forwarded-for") or "unknown"


class RateLimitMiddleware(Middleware):
    """
    Args:
        limiter: Shared sliding-window store.
        limit: Requests allowed per window.
        window_ms: Window length in milliseconds.
        key_func: Request → client identifier.
        include_headers: Add X-RateLimit-* headers to allowed responses.
    """

    def __init__(
        self,
        limiter: SlidingWindowRateLimiter,
        limit: int,
        window_ms: float,
        key_func: Optional[Callable[[HTTPRequest], str]] = None,
        include_headers: bool = True,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")

        self.limiter = limiter
        self.limit = limit
        self.window_ms = window_ms
        self.key_func = key_func or forwarded_for_key
        self.include_headers = include_headers

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        key = self.key_func(request)

        if not self.limiter.check_and_record(key, self.limit, self.window_ms):
            retry_ms = self.limiter.retry_after_ms(key, self.window_ms)
            response = too_many_requests(RATE_LIMITED, retry_after=max(1, math.ceil(retry_ms / 1000)))
            if self.include_headers:
                self._add_headers(response, 0)
            return response

        response = next(request)

        if self.include_headers:
            remaining = self.limiter.remaining(key, self.limit, self.window_ms)
            self._add_headers(response, remaining)

        return response

    def _add_headers(self, response: HTTPResponse, remaining: int) -> None:
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)

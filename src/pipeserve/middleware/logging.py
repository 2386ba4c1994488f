"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

The outermost stage. Times every request and writes one access-log line on
the ``pipeserve.access`` logger.

=============================================================================
FORMATS
=============================================================================

text (default, Apache-like):

    10.0.0.7 - - [17/Oct/2026:08:00:00 +0000] "GET /users/2" 200 88 0.41ms rid=3f2c…

json (one object per line, for log shippers):

    {"request_id": "3f2c…", "method": "GET", "path": "/users/2",
     "status_code": 200, "duration_ms": 0.41, ...}

=============================================================================
WHERE THE REQUEST ID COMES FROM
=============================================================================

The logger runs *outside* RequestIdMiddleware, so on the way in there is no
id yet. By the time ``next(request)`` returns, the inner stage has written
``request.context["request_id"]`` and the logger picks it up from there.

A request that raises is logged at ERROR and the exception continues
outward to the dispatcher's error boundary.

=============================================================================
"""

import time
import json
import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger("pipeserve.access")


@dataclass
class RequestLog:
    """One access-log record."""
    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        line = (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )
        if self.request_id != "-":
            line += f" rid={self.request_id}"
        return line


class LoggingMiddleware(Middleware):
    """
    Access logger.

    Args:
        log_format: "text" or "json".
        log_level: Level for successful requests.
        skip_paths: Exact paths that are never logged.
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000

        if request.path in self.skip_paths:
            return response

        entry = RequestLog(
            request_id=request.request_id or "-",
            method=request.method,
            path=request.path,
            query="&".join(
                f"{k}={v}" for k, values in request.query_params.items() for v in values
            ),
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict(), ensure_ascii=False))
        else:
            logger.log(self.log_level, entry.to_text())

        return response

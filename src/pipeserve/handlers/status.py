"""
=============================================================================
API STATUS
=============================================================================

    GET /api/status    {success, status: "ok", uptime, timestamp}
    GET /api/version   {success, version, python}

Both are answered with ``Cache-Control: no-store`` so a proxy never serves
a stale uptime. Uptime is measured on the monotonic clock, so it does not
jump when the wall clock is adjusted.

=============================================================================
"""

import platform
import time
from typing import Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, success
from .general import iso_now


class StatusHandlers:
    """
    Args:
        version: Application version reported by /api/version.
        started_at: ``time.monotonic()`` reading taken at startup;
            defaults to construction time.
    """

    def __init__(self, version: str, started_at: Optional[float] = None):
        self.version = version
        self.started_at = time.monotonic() if started_at is None else started_at

    @property
    def uptime(self) -> float:
        """Seconds since startup."""
        return time.monotonic() - self.started_at

    def status(self, request: HTTPRequest) -> HTTPResponse:
        response = success(status="ok", uptime=round(self.uptime, 3), timestamp=iso_now())
        response.headers["Cache-Control"] = "no-store"
        return response

    def version_info(self, request: HTTPRequest) -> HTTPResponse:
        response = success(version=self.version, python=platform.python_version())
        response.headers["Cache-Control"] = "no-store"
        return response

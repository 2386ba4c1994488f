"""
=============================================================================
SINGLE-PAGE APPLICATION FALLBACK
=============================================================================

Last-resort handler for GET requests no route matched.

=============================================================================
WHY A FALLBACK?
=============================================================================

A single-page application routes on the client. The browser may ask the
server for any of its URLs directly (a bookmark, a refresh):

    GET /assets/app-3f2c.js    → a real file in the build   → serve it
    GET /users/2/edit          → no such file               → serve index.html,
                                                               the client router
                                                               renders the page
    GET /api/nope              → API namespace              → JSON 404, never
                                                               index.html

The API-prefix check lives in the Dispatcher; this handler only knows
about files.

=============================================================================
CACHING
=============================================================================

    assets       ETag + Cache-Control: public, max-age=<cache_max_age>
                 If-None-Match hit → 304 Not Modified, no body
    index.html   ETag + Cache-Control: no-cache
                 (the shell must be revalidated so new deploys are picked up)

=============================================================================
SECURITY
=============================================================================

The resolved file path must stay inside root_dir. Anything that resolves
elsewhere (symlinks, encoded traversal that slipped through) is treated as
"no such asset" and gets the index document.

=============================================================================
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, format_http_date
from ..http.status_codes import HTTPStatus
from ..http.mime_types import get_content_type

logger = logging.getLogger(__name__)


class SPAFallbackHandler:
    """
    Serve a file from ``root_dir`` or the SPA entry document.

    Args:
        root_dir: Build output directory (e.g. ``frontend/dist``).
        index_file: Entry document relative to root_dir.
        cache_max_age: Cache lifetime for assets, in seconds.

    Raises:
        ValueError: If root_dir is not a directory.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        index_file: str = "index.html",
        cache_max_age: int = 3600,
    ):
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.cache_max_age = cache_max_age

        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    @property
    def index_path(self) -> Path:
        return self.root_dir / self.index_file

    def handle(self, request: HTTPRequest) -> Optional[HTTPResponse]:
        """
        Returns:
            The asset, else the index document, else None when the build
            has no index document either.
        """
        asset = self._resolve_asset(request.path)
        if asset is not None:
            return self._serve_file(asset, request, f"public, max-age={self.cache_max_age}")

        if self.index_path.is_file():
            return self._serve_file(self.index_path, request, "no-cache")

        logger.warning(f"SPA index document missing: {self.index_path}")
        return None

    def _resolve_asset(self, url_path: str) -> Optional[Path]:
        relative = url_path.lstrip("/")
        if not relative:
            return None

        candidate = (self.root_dir / relative).resolve()
        try:
            candidate.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path escapes static root: {url_path}")
            return None

        if candidate.is_dir():
            candidate = candidate / self.index_file
        return candidate if candidate.is_file() else None

    def _serve_file(self, path: Path, request: HTTPRequest, cache_control: str) -> HTTPResponse:
        stat = path.stat()
        etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'

        if request.get_header("if-none-match") == etag:
            return (ResponseBuilder()
                .status(HTTPStatus.NOT_MODIFIED)
                .header("ETag", etag)
                .header("Cache-Control", cache_control)
                .build())

        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        builder = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("Content-Type", get_content_type(path))
            .header("ETag", etag)
            .header("Last-Modified", format_http_date(modified))
            .header("Cache-Control", cache_control))

        if request.method == "HEAD":
            builder.header("Content-Length", str(stat.st_size))
        else:
            builder.body(path.read_bytes())

        return builder.build()

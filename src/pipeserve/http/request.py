"""
=============================================================================
HTTP REQUEST
=============================================================================

Parses raw HTTP/1.x bytes into an HTTPRequest and carries per-request state
through the middleware pipeline.

=============================================================================
WIRE FORMAT
=============================================================================

    POST /users?notify=1 HTTP/1.1\\r\\n          ← request line
    Host: localhost:8080\\r\\n                    ┐
    Content-Type: application/json\\r\\n          │ headers
    Content-Length: 43\\r\\n                      ┘
    \\r\\n                                        ← blank line
    {"name": "赵六", "email": "zl@example.com"}  ← body (Content-Length bytes)

=============================================================================
REQUEST CONTEXT
=============================================================================

Middleware stages need a place to hand values to the stages inside them
without touching headers. ``request.context`` is that slot:

    RequestIdMiddleware   →  context["request_id"] = "3f2c…"
    AuthMiddleware        →  context["principal"]  = Principal(...)
    handlers / dispatcher ←  read both

One HTTPRequest exists per request and is owned by the worker thread that
runs it, so the dict needs no locking.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse, unquote
import json
import re


class HTTPParseError(Exception):
    """
    Raised when a request (or its body) cannot be understood.

    Attributes:
        status_code: HTTP status to answer with (400 by default).
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are lower-cased at parse time, so lookups are
    case-insensitive as long as callers use ``get_header``.

    Attributes:
        method: Upper-case method (GET, POST, ...).
        path: URL-decoded path without the query string.
        version: "HTTP/1.0" or "HTTP/1.1".
        headers: Lower-cased header name → value.
        query_params: Name → list of values (``?tag=a&tag=b``).
        body: Raw body bytes.
        path_params: Values captured by the router (``:id`` → "42").
        client_address: (ip, port) of the peer.
        context: Per-request extension slot shared by middleware and handlers.
    """
    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: tuple[str, int] = ("", 0)
    context: Dict[str, Any] = field(default_factory=dict)

    _body_json: Optional[Any] = field(default=None, repr=False)

    # =========================================================================
    # HEADER-DERIVED PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Media type without parameters ("application/json")."""
        value = self.headers.get("content-type", "")
        return value.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 defaults to persistent connections unless the client sends
        ``Connection: close``; HTTP/1.0 is the other way round.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def request_id(self) -> Optional[str]:
        return self.context.get("request_id")

    # =========================================================================
    # BODY
    # =========================================================================

    @property
    def json(self) -> Any:
        """
        Body decoded as JSON, cached after the first access.

        Returns None for an empty body.

        Raises:
            HTTPParseError: If the body is not valid UTF-8 JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def has_query(self, name: str) -> bool:
        """True for ``?pretty`` as well as ``?pretty=1``."""
        return name in self.query_params


class RequestParser:
    """
    Turns one complete request (as framed by Connection.read_request) into an
    HTTPRequest.

    Example:
        parser = RequestParser(max_request_size=1024 * 1024)
        request = parser.parse(raw_bytes, ("127.0.0.1", 52113))
    """

    VALID_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Raises:
            HTTPParseError: Oversized (413), unknown method (405),
                unsupported version (505), or otherwise malformed (400).
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, List[str]], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # Reject traversal before the path reaches the static fallback
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..")

        return method, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        last_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            # Obsolete line folding: continuation of the previous header
            if line[0] in (" ", "\t"):
                if last_name is not None:
                    headers[last_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name = match.group(1).strip().lower()
            value = match.group(2).strip()
            last_name = name

            # Repeated headers fold into one comma-separated value
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """One-shot helper around RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HTTPRequest     parsed request + context slot for middleware hand-offs
# RequestParser   bytes → HTTPRequest, with size/method/version checks
# HTTPParseError  carries the status code to answer with
# =============================================================================

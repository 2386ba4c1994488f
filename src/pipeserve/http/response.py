"""
=============================================================================
HTTP RESPONSE
=============================================================================

Response objects, a fluent builder, and the JSON envelope helpers every
endpoint answers with.

=============================================================================
THE RESPONSE ENVELOPE
=============================================================================

Every JSON body carries a boolean ``success``:

    success                         failure
    ───────                         ───────
    {                               {
      "success": true,                "success": false,
      "data": [...],                  "message": "用户不存在"
      "total": 3                    }
    }

Failures always carry ``message``; list endpoints add ``total``; extra keys
(``path``, ``requestId``) ride along as keyword arguments:

    success(users, total=len(users))
    failure(HTTPStatus.NOT_FOUND, "路由不存在", path=request.path)

=============================================================================
SERIALIZATION
=============================================================================

    HTTP/1.1 200 OK\\r\\n                              ← status line
    Content-Type: application/json; charset=utf-8\\r\\n
    Content-Length: 57\\r\\n                           ← added by to_bytes
    Date: Sat, 17 Oct 2026 08:00:00 GMT\\r\\n          ← added by to_bytes
    Server: pipeserve/1.0\\r\\n                        ← added by to_bytes
    \\r\\n
    {"success": true, "data": ...}

JSON is dumped with ``ensure_ascii=False`` so Chinese messages stay readable
on the wire (UTF-8), not ``\\u7528\\u6237``.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
import json

from .status_codes import HTTPStatus
from .mime_types import get_content_type


JSON_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Attributes:
        status: Status code.
        headers: Header name → value (names keep their case).
        body: Body bytes.
        version: Protocol version for the status line.
    """
    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {HTTPStatus(self.status).phrase}"

    @property
    def is_json(self) -> bool:
        return self.headers.get("Content-Type", "").startswith("application/json")

    def json_body(self) -> Any:
        """Decoded JSON body, or None when the response is not JSON."""
        if not self.is_json or not self.body:
            return None
        return json.loads(self.body.decode("utf-8"))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = "pipeserve/1.0") -> bytes:
        """
        Serialize status line, headers and body.

        Content-Length, Date and Server are filled in when missing; the
        object's own headers dict is left untouched.
        """
        headers = dict(self.headers)
        headers.setdefault("Content-Length", str(len(self.body)))
        headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = "\r\n".join(lines) + "\r\n\r\n"

        return head.encode("utf-8") + self.body


class ResponseBuilder:
    """
    Fluent construction of HTTPResponse objects.

    Example:
        return (ResponseBuilder()
            .status(HTTPStatus.TOO_MANY_REQUESTS)
            .header("Retry-After", "60")
            .json({"success": False, "message": "..."})
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """Serialize ``data`` as UTF-8 JSON; ``pretty`` indents by two spaces."""
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = JSON_CONTENT_TYPE
        return self

    def file(self, content: bytes, filename: str) -> "ResponseBuilder":
        self._body = content
        self._headers["Content-Type"] = get_content_type(filename)
        return self

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-cache"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    RFC 7231 IMF-fixdate: "Sat, 17 Oct 2026 08:00:00 GMT".

    Built by hand because ``strftime("%a")`` follows the process locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, {dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# ENVELOPE HELPERS
# =============================================================================

_UNSET = object()


def success(
    data: Any = _UNSET,
    message: Optional[str] = None,
    status: HTTPStatus = HTTPStatus.OK,
    **extra: Any,
) -> HTTPResponse:
    """
    ``{"success": true, "message"?, "data"?, **extra}``.

    ``data`` is omitted entirely when not given, so ``success(message="...")``
    produces no ``"data": null`` key.
    """
    payload: Dict[str, Any] = {"success": True}
    if message is not None:
        payload["message"] = message
    if data is not _UNSET:
        payload["data"] = data
    payload.update(extra)
    return ResponseBuilder().status(status).json(payload).build()


def created(data: Any, message: Optional[str] = None, **extra: Any) -> HTTPResponse:
    return success(data, message=message, status=HTTPStatus.CREATED, **extra)


def failure(status: HTTPStatus, message: str, **extra: Any) -> HTTPResponse:
    """``{"success": false, "message": ..., **extra}`` with the given status."""
    payload: Dict[str, Any] = {"success": False, "message": message}
    payload.update(extra)
    return ResponseBuilder().status(status).json(payload).build()


def no_content() -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def bad_request(message: str) -> HTTPResponse:
    return failure(HTTPStatus.BAD_REQUEST, message)


def unauthorized(message: str, scheme: str = "Bearer") -> HTTPResponse:
    response = failure(HTTPStatus.UNAUTHORIZED, message)
    response.headers["WWW-Authenticate"] = scheme
    return response


def forbidden(message: str) -> HTTPResponse:
    return failure(HTTPStatus.FORBIDDEN, message)


def not_found(message: str, **extra: Any) -> HTTPResponse:
    return failure(HTTPStatus.NOT_FOUND, message, **extra)


def too_many_requests(message: str, retry_after: Optional[int] = None) -> HTTPResponse:
    response = failure(HTTPStatus.TOO_MANY_REQUESTS, message)
    if retry_after is not None:
        response.headers["Retry-After"] = str(retry_after)
    return response


def internal_error(message: str, **extra: Any) -> HTTPResponse:
    return failure(HTTPStatus.INTERNAL_SERVER_ERROR, message, **extra)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HTTPResponse      status + headers + body, to_bytes() for the wire
# ResponseBuilder   fluent construction
# success/failure   the {success, data?, message?, ...} envelope
# bad_request ... internal_error   status-specific failure shortcuts
# =============================================================================

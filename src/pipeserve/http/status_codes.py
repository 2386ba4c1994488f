"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this service actually emits, with their reason phrases.

=============================================================================
WHICH CODE, WHEN
=============================================================================

    ┌──────┬──────────────────────────────────────────────────────────────┐
    │ 200  │ Read or update succeeded                                     │
    │ 201  │ POST /users created a record                                 │
    │ 204  │ CORS preflight answered                                      │
    │ 304  │ Static asset unchanged (If-None-Match matched the ETag)      │
    ├──────┼──────────────────────────────────────────────────────────────┤
    │ 400  │ Missing field, duplicate email, malformed JSON               │
    │ 401  │ Authorization header missing or rejected by the verifier     │
    │ 403  │ Static path outside the document root                        │
    │ 404  │ No route, no record                                          │
    │ 408  │ Client connected but never finished sending                  │
    │ 413  │ Request larger than max_request_size                         │
    │ 429  │ Sliding window quota used up                                 │
    ├──────┼──────────────────────────────────────────────────────────────┤
    │ 500  │ Uncaught exception translated at the dispatcher boundary     │
    │ 503  │ Worker pool saturated                                        │
    │ 505  │ Request line not HTTP/1.0 or HTTP/1.1                        │
    └──────┴──────────────────────────────────────────────────────────────┘

Because HTTPStatus is an IntEnum, ``HTTPStatus.NOT_FOUND == 404`` holds and
it formats as a plain integer inside f-strings.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """HTTP status codes with reason phrases."""

    # 2xx
    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    # 3xx
    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    # 4xx
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413
    TOO_MANY_REQUESTS = 429

    # 5xx
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line, e.g. "Not Found"."""
        return _STATUS_PHRASES.get(self.value, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self.value < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.value < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.value < 600


_STATUS_PHRASES = {
    200: "OK",
    201: "Created",
    204: "No Content",
    301: "Moved Permanently",
    302: "Found",
    304: "Not Modified",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    408: "Request Timeout",
    413: "Payload Too Large",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}

"""
Request-id tagging.

Generates a UUID4 per request, stores it in ``request.context["request_id"]``
for inner stages and handlers, and returns it in the ``X-Request-ID``
response header so a client can quote it in a bug report.

The dispatcher's error boundary reads the same context key, so a 500 body
carries ``requestId`` even though the exception skipped this stage's
return path.
"""

import uuid
from typing import Callable, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


REQUEST_ID_KEY = "request_id"


class RequestIdMiddleware(Middleware):
    """
    Args:
        header_name: Response header carrying the id.
        trust_incoming: Reuse a client-supplied id from the same header
            instead of generating one (useful behind a proxy that already
            assigns ids).
        generator: Id factory, uuid4 strings by default.
    """

    def __init__(
        self,
        header_name: str = "X-Request-ID",
        trust_incoming: bool = False,
        generator: Optional[Callable[[], str]] = None,
    ):
        self.header_name = header_name
        self.trust_incoming = trust_incoming
        self._generate = generator or (lambda: str(uuid.uuid4()))

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = ""
        if self.trust_incoming:
            request_id = request.get_header(self.header_name)
        if not request_id:
            request_id = self._generate()

        request.context[REQUEST_ID_KEY] = request_id

        response = next(request)
        response.headers[self.header_name] = request_id
        return response

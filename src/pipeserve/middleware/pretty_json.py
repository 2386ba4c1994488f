"""
Pretty-printed JSON on demand.

Append ``?pretty`` to any URL and JSON responses come back indented:

    GET /users?pretty

    {
      "success": true,
      "data": [
        ...

Responses are compact by default, so machine clients pay nothing for this.
"""

import json

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


class PrettyJSONMiddleware(Middleware):
    """
    Args:
        query_param: Query parameter that switches indentation on.
        indent: Spaces per level.
    """

    def __init__(self, query_param: str = "pretty", indent: int = 2):
        self.query_param = query_param
        self.indent = indent

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)

        if request.has_query(self.query_param) and response.is_json and response.body:
            data = response.json_body()
            response.body = json.dumps(data, indent=self.indent, ensure_ascii=False).encode("utf-8")
            response.headers.pop("Content-Length", None)

        return response

"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that knows about HTTP itself, and nothing about users, products
or middleware policy:

    request.py       bytes → HTTPRequest (+ the per-request context slot)
    response.py      HTTPResponse → bytes, ResponseBuilder, JSON envelope
    router.py        (method, path) → handler + guarding middleware
    status_codes.py  HTTPStatus enum
    mime_types.py    extension → Content-Type for the static fallback

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    success,
    created,
    failure,
    no_content,
    bad_request,
    unauthorized,
    forbidden,
    not_found,
    too_many_requests,
    internal_error,
)
from .router import Router, Route, RouteMatch, Handler
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    "HTTPResponse",
    "ResponseBuilder",
    "success",
    "created",
    "failure",
    "no_content",
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "too_many_requests",
    "internal_error",

    "Router",
    "Route",
    "RouteMatch",
    "Handler",

    "HTTPStatus",

    "get_mime_type",
    "get_content_type",
]

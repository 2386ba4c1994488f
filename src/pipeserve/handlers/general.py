"""
Demo endpoints: the welcome document, a greeting, a deliberate failure and
a rate-limited route.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, success


WELCOME = "欢迎使用 pipeserve！"
LIMITED = "这个路由每分钟只能访问5次"
TEST_ERROR = "这是一个测试错误"

DEFAULT_ENDPOINTS = {
    "users": "/users",
    "user": "/users/:id",
    "hello": "/hello/:name",
    "search": "/search?q=keyword",
}


def iso_now() -> str:
    """Current UTC time as ``2024-01-01T12:00:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class GeneralHandlers:
    def __init__(self, version: str, endpoints: Optional[Dict[str, str]] = None):
        self.version = version
        self.endpoints = dict(DEFAULT_ENDPOINTS if endpoints is None else endpoints)

    def index(self, request: HTTPRequest) -> HTTPResponse:
        return success(
            message=WELCOME,
            version=self.version,
            requestId=request.request_id,
            endpoints=self.endpoints,
        )

    def hello(self, request: HTTPRequest) -> HTTPResponse:
        name = request.path_params.get("name", "")
        return success(message=f"你好，{name}！", timestamp=iso_now())

    def error(self, request: HTTPRequest) -> HTTPResponse:
        raise RuntimeError(TEST_ERROR)

    def limited(self, request: HTTPRequest) -> HTTPResponse:
        return success(message=LIMITED, requestId=request.request_id)

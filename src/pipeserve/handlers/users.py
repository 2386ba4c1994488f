"""
=============================================================================
USER ENDPOINTS
=============================================================================

    GET    /users          list                     200 {data, total}
    GET    /users/:id      fetch one                200 | 404
    POST   /users          create {name, email}     201 | 400
    PUT    /users/:id      partial update           200 | 400 | 404
    DELETE /users/:id      remove                   200 | 404
    GET    /search?q=&limit=   substring search     200 {data: {query, results, total}}

Validation and not-found are answered here, with the failure envelope.
Nothing in this module catches broad exceptions: a store that blows up
lets the error reach the dispatcher's 500 boundary.

=============================================================================
"""

import re
from typing import Any, Dict, Optional

from ..http.request import HTTPRequest, HTTPParseError
from ..http.response import HTTPResponse, bad_request, created, not_found, success
from ..stores.base import DuplicateEmailError, UserStore


USER_NOT_FOUND = "用户不存在"
MISSING_FIELDS = "请提供 name 和 email"
INVALID_BODY = "请求数据格式错误"
EMAIL_TAKEN = "该邮箱已被使用"
NO_FIELDS = "没有提供要更新的字段"

USER_CREATED = "用户创建成功"
USER_UPDATED = "用户更新成功"
USER_DELETED = "用户删除成功"

DEFAULT_SEARCH_LIMIT = 10

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_id(value: Optional[str]) -> Optional[int]:
    """
    Leading integer of a path id, so "12abc" is 12 and "3.5" is 3.

    None when the value does not start with digits.
    """
    found = _LEADING_INT.match(value or "")
    return int(found.group(1)) if found else None


def parse_limit(value: Optional[str], default: int = DEFAULT_SEARCH_LIMIT) -> int:
    """Query ``limit``: default when missing or not an integer, never negative."""
    if value is None or value == "":
        return default
    try:
        return max(0, int(value))
    except ValueError:
        return default


def _json_object(request: HTTPRequest) -> Optional[Dict[str, Any]]:
    try:
        body = request.json
    except HTTPParseError:
        return None
    return body if isinstance(body, dict) else None


def _text_field(body: Dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if isinstance(value, str) and value:
        return value
    return None


class UserHandlers:
    """Route handlers over an injected UserStore."""

    def __init__(self, store: UserStore):
        self.store = store

    def list_users(self, request: HTTPRequest) -> HTTPResponse:
        users = self.store.list_users()
        return success([u.to_dict() for u in users], total=len(users))

    def get_user(self, request: HTTPRequest) -> HTTPResponse:
        user_id = parse_id(request.path_params.get("id"))
        user = self.store.get_user(user_id) if user_id is not None else None
        if user is None:
            return not_found(USER_NOT_FOUND)
        return success(user.to_dict())

    def create_user(self, request: HTTPRequest) -> HTTPResponse:
        body = _json_object(request)
        if body is None:
            return bad_request(INVALID_BODY)

        name = _text_field(body, "name")
        email = _text_field(body, "email")
        if not name or not email:
            return bad_request(MISSING_FIELDS)

        try:
            user = self.store.create_user(name, email)
        except DuplicateEmailError:
            return bad_request(EMAIL_TAKEN)

        return created(user.to_dict(), message=USER_CREATED)

    def update_user(self, request: HTTPRequest) -> HTTPResponse:
        user_id = parse_id(request.path_params.get("id"))
        if user_id is None or self.store.get_user(user_id) is None:
            return not_found(USER_NOT_FOUND)

        body = _json_object(request)
        if body is None:
            return bad_request(INVALID_BODY)

        name = _text_field(body, "name")
        email = _text_field(body, "email")
        if name is None and email is None:
            return bad_request(NO_FIELDS)

        try:
            user = self.store.update_user(user_id, name=name, email=email)
        except DuplicateEmailError:
            return bad_request(EMAIL_TAKEN)

        # Deleted between the existence check and the update
        if user is None:
            return not_found(USER_NOT_FOUND)

        return success(user.to_dict(), message=USER_UPDATED)

    def delete_user(self, request: HTTPRequest) -> HTTPResponse:
        user_id = parse_id(request.path_params.get("id"))
        if user_id is None or not self.store.delete_user(user_id):
            return not_found(USER_NOT_FOUND)
        return success(message=USER_DELETED)

    def search(self, request: HTTPRequest) -> HTTPResponse:
        query = request.get_query("q") or ""
        limit = parse_limit(request.get_query("limit"))

        results, total = self.store.search(query, limit)
        return success({
            "query": query,
            "results": [u.to_dict() for u in results],
            "total": total,
        })

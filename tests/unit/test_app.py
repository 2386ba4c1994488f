"""
End-to-end tests of the assembled application, called in-process.

Every request goes through create_app()'s full global middleware stack.
"""

import json
import logging
import re
from pathlib import Path

import pytest

from conftest import make_request
from pipeserve import ServerConfig, __version__, create_app
from pipeserve.handlers.users import parse_id, parse_limit
from pipeserve.http.status_codes import HTTPStatus


AUTH = {"Authorization": "Bearer test-token"}


class TestIndex:
    def test_welcome_document(self, call):
        response = call("GET", "/")
        body = response.json_body()

        assert response.status == HTTPStatus.OK
        assert body["success"] is True
        assert body["message"] == "欢迎使用 pipeserve！"
        assert body["version"] == __version__
        assert body["requestId"] == response.headers["X-Request-ID"]
        assert body["endpoints"]["users"] == "/users"

    def test_every_response_has_request_id(self, call):
        for path in ["/", "/users", "/nope", "/protected/profile"]:
            assert call("GET", path).headers.get("X-Request-ID")


class TestUsers:
    """The /users CRUD endpoints."""

    def test_list(self, call):
        body = call("GET", "/users").json_body()

        assert body["success"] is True
        assert body["total"] == 3
        assert [u["name"] for u in body["data"]] == ["张三", "李四", "王五"]

    def test_get(self, call):
        body = call("GET", "/users/1").json_body()
        assert body["data"] == {"id": 1, "name": "张三", "email": "zhangsan@example.com"}

    @pytest.mark.parametrize("path", ["/users/99", "/users/abc", "/users/-1"])
    def test_get_missing(self, call, path):
        response = call("GET", path)

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json_body() == {"success": False, "message": "用户不存在"}

    @pytest.mark.parametrize("path", ["/users/2abc", "/users/2.5"])
    def test_get_reads_leading_integer(self, call, path):
        assert call("GET", path).json_body()["data"]["id"] == 2

    def test_head_answers_like_get_without_body(self, call):
        get = call("GET", "/users")
        head = call("HEAD", "/users")

        assert head.status == HTTPStatus.OK
        assert head.body == b""
        assert head.headers["Content-Length"] == str(len(get.body))
        assert head.headers["Content-Type"] == get.headers["Content-Type"]

    def test_create(self, call):
        response = call("POST", "/users", body={"name": "赵六", "email": "zhaoliu@example.com"})
        body = response.json_body()

        assert response.status == HTTPStatus.CREATED
        assert body["message"] == "用户创建成功"
        assert body["data"] == {"id": 4, "name": "赵六", "email": "zhaoliu@example.com"}
        assert call("GET", "/users").json_body()["total"] == 4

    @pytest.mark.parametrize("payload", [
        {"name": "赵六"},
        {"email": "zhaoliu@example.com"},
        {"name": "", "email": "zhaoliu@example.com"},
        {"name": 7, "email": "zhaoliu@example.com"},
    ])
    def test_create_missing_fields(self, call, payload):
        response = call("POST", "/users", body=payload)

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json_body()["message"] == "请提供 name 和 email"

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", ""])
    def test_create_invalid_body(self, call, raw):
        response = call("POST", "/users", body=raw)

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json_body()["message"] == "请求数据格式错误"

    def test_create_duplicate_email(self, call):
        response = call("POST", "/users", body={"name": "冒名", "email": "lisi@example.com"})

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json_body()["message"] == "该邮箱已被使用"
        assert call("GET", "/users").json_body()["total"] == 3

    def test_update(self, call):
        response = call("PUT", "/users/2", body={"name": "李四四"})
        body = response.json_body()

        assert response.status == HTTPStatus.OK
        assert body["message"] == "用户更新成功"
        assert body["data"] == {"id": 2, "name": "李四四", "email": "lisi@example.com"}

    def test_update_missing_user(self, call):
        response = call("PUT", "/users/99", body={"name": "x"})
        assert response.status == HTTPStatus.NOT_FOUND

    def test_update_without_fields(self, call):
        response = call("PUT", "/users/2", body={"age": 30})

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json_body()["message"] == "没有提供要更新的字段"

    def test_update_to_taken_email(self, call):
        response = call("PUT", "/users/2", body={"email": "wangwu@example.com"})

        assert response.status == HTTPStatus.BAD_REQUEST
        assert call("GET", "/users/2").json_body()["data"]["email"] == "lisi@example.com"

    def test_delete(self, call):
        response = call("DELETE", "/users/3")

        assert response.status == HTTPStatus.OK
        assert response.json_body() == {"success": True, "message": "用户删除成功"}
        assert call("GET", "/users/3").status == HTTPStatus.NOT_FOUND

    def test_delete_missing_leaves_collection(self, call):
        response = call("DELETE", "/users/99")

        assert response.status == HTTPStatus.NOT_FOUND
        assert call("GET", "/users").json_body()["total"] == 3


class TestSearch:
    def test_matches_name(self, call):
        body = call("GET", "/search", query={"q": "王"}).json_body()

        assert body["data"]["query"] == "王"
        assert [u["id"] for u in body["data"]["results"]] == [3]
        assert body["data"]["total"] == 1

    def test_limit_truncates_but_total_counts_all(self, call):
        data = call("GET", "/search", query={"q": "example", "limit": "2"}).json_body()["data"]

        assert len(data["results"]) == 2
        assert data["total"] == 3

    def test_missing_query_matches_everything(self, call):
        data = call("GET", "/search").json_body()["data"]

        assert data["query"] == ""
        assert data["total"] == 3

    def test_no_match(self, call):
        data = call("GET", "/search", query={"q": "nobody"}).json_body()["data"]
        assert data["results"] == []
        assert data["total"] == 0


class TestQueryHelpers:
    @pytest.mark.parametrize("value, expected", [
        ("5", 5), ("0", 0), ("-1", 0), ("abc", 10), ("", 10), (None, 10),
    ])
    def test_parse_limit(self, value, expected):
        assert parse_limit(value) == expected

    @pytest.mark.parametrize("value, expected", [
        ("12", 12), ("12abc", 12), ("3.5", 3), ("1e3", 1), ("abc", None), ("", None), (None, None),
    ])
    def test_parse_id(self, value, expected):
        assert parse_id(value) == expected


class TestGeneral:
    def test_hello(self, call):
        body = call("GET", "/hello/小明").json_body()

        assert body["message"] == "你好，小明！"
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", body["timestamp"])

    def test_error_route(self, call):
        response = call("GET", "/error")
        body = response.json_body()

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert body["success"] is False
        assert body["message"] == "这是一个测试错误"
        assert body["requestId"] == response.headers["X-Request-ID"]

    def test_error_keeps_cors_and_is_access_logged(self, call, caplog):
        """A cross-origin client can read the 500 body; the access log records it."""
        with caplog.at_level(logging.INFO, logger="pipeserve.access"):
            response = call("GET", "/error", headers={"Origin": "http://localhost:5173"})

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.json_body()["requestId"] == response.headers["X-Request-ID"]

        lines = [r.getMessage() for r in caplog.records if r.name == "pipeserve.access"]
        assert any('"GET /error" 500' in line for line in lines)

    def test_unknown_route(self, call):
        response = call("GET", "/does/not/exist")

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json_body() == {
            "success": False,
            "message": "路由不存在",
            "path": "/does/not/exist",
        }


class TestLimited:
    """GET /limited allows five requests per client per minute."""

    def test_five_then_429(self, call):
        responses = [call("GET", "/limited") for _ in range(6)]

        assert [r.status for r in responses[:5]] == [HTTPStatus.OK] * 5
        assert responses[0].json_body()["message"] == "这个路由每分钟只能访问5次"
        assert responses[5].status == HTTPStatus.TOO_MANY_REQUESTS
        assert responses[5].json_body()["message"] == "请求过于频繁，请稍后再试"
        assert "Retry-After" in responses[5].headers

    def test_window_slides(self, call, clock):
        for _ in range(5):
            call("GET", "/limited")
        assert call("GET", "/limited").status == HTTPStatus.TOO_MANY_REQUESTS

        clock.advance(60_000)
        assert call("GET", "/limited").status == HTTPStatus.OK

    def test_clients_limited_separately(self, call):
        for _ in range(5):
            call("GET", "/limited", headers={"X-Forwarded-For": "10.0.0.1"})

        other = call("GET", "/limited", headers={"X-Forwarded-For": "10.0.0.2"})
        assert other.status == HTTPStatus.OK

    def test_other_routes_unlimited(self, call):
        for _ in range(10):
            assert call("GET", "/users").status == HTTPStatus.OK


class TestProducts:
    def test_list(self, call):
        body = call("GET", "/products").json_body()

        assert body["total"] == 3
        assert body["data"][0] == {"id": 1, "name": "MacBook Pro", "price": 12999}

    def test_get(self, call):
        assert call("GET", "/products/2").json_body()["data"]["name"] == "iPhone 15"

    def test_missing(self, call):
        response = call("GET", "/products/42")

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json_body()["message"] == "产品不存在"


class TestProtected:
    @pytest.mark.parametrize("path", ["/protected/profile", "/protected/dashboard"])
    def test_requires_token(self, call, path):
        response = call("GET", path)

        assert response.status == HTTPStatus.UNAUTHORIZED
        assert response.json_body() == {"success": False, "message": "未提供认证令牌"}

    def test_wrong_token(self, call):
        response = call("GET", "/protected/profile", headers={"Authorization": "Bearer nope"})

        assert response.status == HTTPStatus.UNAUTHORIZED
        assert response.json_body()["message"] == "认证令牌无效"

    def test_profile(self, call):
        response = call("GET", "/protected/profile", headers=AUTH)

        assert response.status == HTTPStatus.OK
        assert response.json_body()["data"] == {"id": 1, "username": "admin", "role": "administrator"}

    def test_dashboard_counts_follow_stores(self, call):
        call("POST", "/users", body={"name": "赵六", "email": "zhaoliu@example.com"})
        body = call("GET", "/protected/dashboard", headers=AUTH).json_body()

        assert body["data"] == {"stats": {"users": 4, "products": 3}}

    def test_configured_token(self):
        app = create_app(ServerConfig(auth_token="s3cret"))

        ok = app(make_request("GET", "/protected/profile", headers={"Authorization": "Bearer s3cret"}))
        old = app(make_request("GET", "/protected/profile", headers=AUTH))

        assert ok.status == HTTPStatus.OK
        assert old.status == HTTPStatus.UNAUTHORIZED


class TestApiStatus:
    def test_status(self, call):
        response = call("GET", "/api/status")
        body = response.json_body()

        assert body["success"] is True
        assert body["status"] == "ok"
        assert body["uptime"] >= 0
        assert body["timestamp"].endswith("Z")
        assert response.headers["Cache-Control"] == "no-store"

    def test_version(self, call):
        body = call("GET", "/api/version").json_body()

        assert body["version"] == __version__
        assert body["python"]

    def test_custom_prefix(self):
        app = create_app(ServerConfig(api_prefix="/v2"))

        assert app(make_request("GET", "/v2/status")).status == HTTPStatus.OK
        assert app(make_request("GET", "/api/status")).status == HTTPStatus.NOT_FOUND


class TestGlobalMiddleware:
    def test_pretty_json(self, call):
        response = call("GET", "/users/1", query={"pretty": ""})
        assert response.body.startswith(b"{\n  ")

    def test_pretty_json_disabled(self):
        app = create_app(ServerConfig(pretty_json=False))
        response = app(make_request("GET", "/users/1", query={"pretty": ""}))

        assert b"\n" not in response.body

    def test_cors_on_responses(self, call):
        response = call("GET", "/users", headers={"Origin": "http://app.test"})
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_preflight_for_any_path(self, call):
        response = call("OPTIONS", "/users/1", headers={
            "Origin": "http://app.test",
            "Access-Control-Request-Method": "PUT",
        })

        assert response.status == HTTPStatus.NO_CONTENT
        assert "PUT" in response.headers["Access-Control-Allow-Methods"]

    def test_utf8_json(self, call):
        response = call("GET", "/users/1")

        assert "张三".encode("utf-8") in response.body
        assert response.headers["Content-Type"] == "application/json; charset=utf-8"


class TestSPAFallback:
    @pytest.fixture
    def spa(self, tmp_path: Path):
        (tmp_path / "index.html").write_text("<div id=root></div>", encoding="utf-8")
        (tmp_path / "app.js").write_text("boot()", encoding="utf-8")
        return create_app(ServerConfig(static_dir=str(tmp_path)))

    def test_client_route_gets_index(self, spa):
        response = spa(make_request("GET", "/settings/profile"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"<div id=root></div>"

    def test_asset(self, spa):
        assert spa(make_request("GET", "/app.js")).body == b"boot()"

    def test_api_routes_still_win(self, spa):
        assert spa(make_request("GET", "/users")).json_body()["total"] == 3

    def test_unknown_api_path_is_json_404(self, spa):
        response = spa(make_request("GET", "/api/unknown"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json_body()["message"] == "路由不存在"


class TestDatabaseBackend:
    @pytest.fixture
    def db_app(self, tmp_path: Path):
        app = create_app(ServerConfig(database_url=f"sqlite:///{tmp_path / 'app.db'}"))
        yield app
        app.close()

    def test_seeded_users(self, db_app):
        body = db_app(make_request("GET", "/users")).json_body()
        assert [u["name"] for u in body["data"]] == ["张三", "李四", "王五"]

    def test_created_user_has_timestamps(self, db_app):
        response = db_app(make_request(
            "POST", "/users", body={"name": "赵六", "email": "zhaoliu@example.com"},
        ))
        data = response.json_body()["data"]

        assert response.status == HTTPStatus.CREATED
        assert data["id"] == 4
        assert data["created_at"] and data["updated_at"]

    def test_data_persists_across_apps(self, tmp_path: Path):
        config = ServerConfig(database_url=f"sqlite:///{tmp_path / 'app.db'}")

        first = create_app(config)
        first(make_request("DELETE", "/users/1"))
        first.close()

        second = create_app(config)
        try:
            assert second(make_request("GET", "/users/1")).status == HTTPStatus.NOT_FOUND
        finally:
            second.close()

    def test_unseeded(self, tmp_path: Path):
        app = create_app(ServerConfig(database_url="sqlite://", seed_data=False))
        try:
            body = json.loads(app(make_request("GET", "/users")).body)
            assert body == {"success": True, "data": [], "total": 0}
        finally:
            app.close()

"""
Unit tests for the Dispatcher: pipeline order, 404s and the error boundary.
"""

import logging

from conftest import make_request
from pipeserve.dispatcher import Dispatcher
from pipeserve.http.request import HTTPParseError
from pipeserve.http.response import ResponseBuilder, success
from pipeserve.http.router import Router
from pipeserve.http.status_codes import HTTPStatus
from pipeserve.middleware import CORSMiddleware, Middleware, RequestIdMiddleware


class Recorder(Middleware):
    def __init__(self, label: str, trail: list):
        self.label = label
        self.trail = trail

    def __call__(self, request, next):
        self.trail.append(self.label)
        return next(request)


class StubFallback:
    def __init__(self, response=None):
        self.response = response
        self.calls = []

    def handle(self, request):
        self.calls.append(request.path)
        return self.response


def ok(request):
    return success(request.path_params or None)


class TestDispatch:
    """Tests for routing through the dispatcher."""

    def test_global_then_route_middleware(self):
        """Global stages run before route stages, both in list order."""
        trail = []
        router = Router()
        group = router.group("/g").use(Recorder("group", trail))
        group.add_route("/x", ok, "GET", middleware=[Recorder("route", trail)])

        app = Dispatcher(router, middleware=[Recorder("g1", trail), Recorder("g2", trail)])
        app(make_request("GET", "/g/x"))

        assert trail == ["g1", "g2", "group", "route"]

    def test_path_params_reach_handler(self):
        router = Router()
        router.add_route("/users/:id", ok, "GET")

        response = Dispatcher(router)(make_request("GET", "/users/12"))
        assert response.json_body()["data"] == {"id": "12"}

    def test_global_middleware_runs_for_unmatched(self):
        """Request ids are attached to 404s too."""
        app = Dispatcher(Router(), middleware=[RequestIdMiddleware()])
        response = app(make_request("GET", "/nope"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert "X-Request-ID" in response.headers

    def test_use_appends_global_middleware(self):
        trail = []
        router = Router()
        router.add_route("/", ok, "GET")
        app = Dispatcher(router).use(Recorder("late", trail))

        app(make_request("GET", "/"))
        assert trail == ["late"]


class TestNotFound:
    """Tests for unmatched requests."""

    def test_404_envelope(self):
        response = Dispatcher(Router())(make_request("GET", "/missing"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.json_body() == {"success": False, "message": "路由不存在", "path": "/missing"}

    def test_head_on_get_route_drops_body(self):
        router = Router()
        router.add_route("/users/:id", ok, "GET")

        response = Dispatcher(router)(make_request("HEAD", "/users/7"))

        assert response.status == HTTPStatus.OK
        assert response.body == b""
        assert int(response.headers["Content-Length"]) > 0

    def test_wrong_method_is_404(self):
        router = Router()
        router.add_route("/users", ok, "GET")

        response = Dispatcher(router)(make_request("DELETE", "/users"))
        assert response.status == HTTPStatus.NOT_FOUND


class TestFallback:
    """Tests for handing unmatched GETs to the static fallback."""

    def test_unmatched_get_uses_fallback(self):
        page = ResponseBuilder().html("<div id=root></div>").build()
        fallback = StubFallback(page)
        app = Dispatcher(Router(), fallback=fallback)

        assert app(make_request("GET", "/dashboard/settings")) is page
        assert fallback.calls == ["/dashboard/settings"]

    def test_head_uses_fallback(self):
        fallback = StubFallback(success())
        Dispatcher(Router(), fallback=fallback)(make_request("HEAD", "/about"))
        assert fallback.calls == ["/about"]

    def test_api_paths_never_fall_back(self):
        fallback = StubFallback(success())
        app = Dispatcher(Router(), fallback=fallback)

        assert app(make_request("GET", "/api/nope")).status == HTTPStatus.NOT_FOUND
        assert app(make_request("GET", "/api")).status == HTTPStatus.NOT_FOUND
        assert fallback.calls == []

    def test_prefix_match_is_segment_aware(self):
        """/apixyz is not under /api."""
        fallback = StubFallback(success())
        Dispatcher(Router(), fallback=fallback)(make_request("GET", "/apixyz"))
        assert fallback.calls == ["/apixyz"]

    def test_custom_api_prefix(self):
        fallback = StubFallback(success())
        app = Dispatcher(Router(), fallback=fallback, api_prefix="/rest/")

        assert app.is_api_path("/rest/users")
        assert not app.is_api_path("/api/users")

    def test_post_never_falls_back(self):
        fallback = StubFallback(success())
        response = Dispatcher(Router(), fallback=fallback)(make_request("POST", "/form"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert fallback.calls == []

    def test_fallback_without_index_gives_404(self):
        app = Dispatcher(Router(), fallback=StubFallback(None))
        assert app(make_request("GET", "/page")).status == HTTPStatus.NOT_FOUND


class TestErrorBoundary:
    """Tests for exception translation."""

    def test_500_with_message_and_request_id(self, caplog):
        def boom(request):
            raise RuntimeError("这是一个测试错误")

        router = Router()
        router.add_route("/error", boom, "GET")
        app = Dispatcher(router, middleware=[RequestIdMiddleware(generator=lambda: "rid-9")])

        with caplog.at_level(logging.ERROR, logger="pipeserve.dispatcher"):
            response = app(make_request("GET", "/error"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.json_body() == {
            "success": False,
            "message": "这是一个测试错误",
            "requestId": "rid-9",
        }
        assert response.headers["X-Request-ID"] == "rid-9"
        assert any(r.exc_info for r in caplog.records if r.name == "pipeserve.dispatcher")

    def test_500_passes_back_through_global_stages(self):
        """Handler errors become a response before the global stages unwind."""
        def boom(request):
            raise RuntimeError("kaput")

        trail = []
        router = Router()
        router.add_route("/error", boom, "GET")
        app = Dispatcher(router, middleware=[
            Recorder("outer", trail),
            CORSMiddleware(),
            RequestIdMiddleware(generator=lambda: "rid-3"),
        ])

        response = app(make_request("GET", "/error", headers={"Origin": "http://a.test"}))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.json_body()["requestId"] == "rid-3"
        assert trail == ["outer"]

    def test_route_middleware_errors_are_caught_inside(self):
        class Broken(Middleware):
            def __call__(self, request, next):
                raise ValueError("route stage")

        router = Router()
        router.add_route("/", ok, "GET", middleware=[Broken()])
        app = Dispatcher(router, middleware=[CORSMiddleware()])

        response = app(make_request("GET", "/", headers={"Origin": "http://a.test"}))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert "Access-Control-Allow-Origin" in response.headers

    def test_500_default_message(self):
        def boom(request):
            raise RuntimeError()

        router = Router()
        router.add_route("/", boom, "GET")
        body = Dispatcher(router)(make_request("GET", "/")).json_body()

        assert body == {"success": False, "message": "服务器内部错误"}

    def test_middleware_errors_are_caught(self):
        class Broken(Middleware):
            def __call__(self, request, next):
                raise ValueError("broken stage")

        app = Dispatcher(Router(), middleware=[Broken()])
        response = app(make_request("GET", "/"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.json_body()["message"] == "broken stage"

    def test_parse_error_keeps_its_status(self):
        def strict(request):
            raise HTTPParseError("Invalid JSON body", status_code=400)

        router = Router()
        router.add_route("/", strict, "POST")
        response = Dispatcher(router)(make_request("POST", "/"))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.json_body() == {"success": False, "message": "Invalid JSON body"}


class TestLifecycle:
    def test_close_runs_callbacks_in_reverse(self):
        calls = []
        app = Dispatcher(Router())
        app.on_close(lambda: calls.append("first"))
        app.on_close(lambda: calls.append("second"))

        app.close()
        app.close()

        assert calls == ["second", "first"]

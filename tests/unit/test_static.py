"""
Unit tests for the SPA fallback handler.
"""

from pathlib import Path

import pytest

from conftest import make_request
from pipeserve.handlers.static import SPAFallbackHandler
from pipeserve.http.status_codes import HTTPStatus


INDEX = b"<!doctype html><div id=root></div>"


@pytest.fixture
def dist(tmp_path: Path) -> Path:
    (tmp_path / "index.html").write_bytes(INDEX)
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "app.js").write_bytes(b"console.log('hi')")
    (tmp_path / "assets" / "style.css").write_bytes(b"body{}")
    return tmp_path


class TestSPAFallback:
    """Tests for SPAFallbackHandler.handle()."""

    def test_serves_existing_asset(self, dist: Path):
        response = SPAFallbackHandler(dist).handle(make_request("GET", "/assets/app.js"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"console.log('hi')"
        assert "javascript" in response.headers["Content-Type"]
        assert response.headers["Cache-Control"].startswith("public")
        assert "ETag" in response.headers

    def test_content_type_from_extension(self, dist: Path):
        response = SPAFallbackHandler(dist).handle(make_request("GET", "/assets/style.css"))
        assert response.headers["Content-Type"].startswith("text/css")

    def test_unknown_path_serves_index(self, dist: Path):
        response = SPAFallbackHandler(dist).handle(make_request("GET", "/users/2/edit"))

        assert response.status == HTTPStatus.OK
        assert response.body == INDEX
        assert response.headers["Content-Type"].startswith("text/html")
        assert response.headers["Cache-Control"] == "no-cache"

    def test_root_serves_index(self, dist: Path):
        response = SPAFallbackHandler(dist).handle(make_request("GET", "/"))
        assert response.body == INDEX

    def test_directory_serves_its_index(self, dist: Path):
        (dist / "docs").mkdir()
        (dist / "docs" / "index.html").write_bytes(b"docs")

        response = SPAFallbackHandler(dist).handle(make_request("GET", "/docs"))
        assert response.body == b"docs"

    def test_escape_from_root_gets_index(self, dist: Path, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        (outside / "secret.txt").write_bytes(b"secret")
        (dist / "link").symlink_to(outside, target_is_directory=True)

        response = SPAFallbackHandler(dist).handle(make_request("GET", "/link/secret.txt"))
        assert response.body == INDEX

    def test_etag_revalidation(self, dist: Path):
        handler = SPAFallbackHandler(dist)
        etag = handler.handle(make_request("GET", "/assets/app.js")).headers["ETag"]

        response = handler.handle(make_request("GET", "/assets/app.js", headers={"If-None-Match": etag}))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.body == b""

    def test_stale_etag_gets_full_response(self, dist: Path):
        request = make_request("GET", "/assets/app.js", headers={"If-None-Match": '"0-0"'})
        response = SPAFallbackHandler(dist).handle(request)

        assert response.status == HTTPStatus.OK

    def test_head_has_length_but_no_body(self, dist: Path):
        response = SPAFallbackHandler(dist).handle(make_request("HEAD", "/assets/app.js"))

        assert response.body == b""
        assert response.headers["Content-Length"] == str(len(b"console.log('hi')"))

    def test_missing_index_returns_none(self, tmp_path: Path):
        assert SPAFallbackHandler(tmp_path).handle(make_request("GET", "/anything")) is None

    def test_custom_index_file(self, dist: Path):
        (dist / "app.html").write_bytes(b"app shell")
        handler = SPAFallbackHandler(dist, index_file="app.html")

        assert handler.handle(make_request("GET", "/route")).body == b"app shell"

    def test_root_must_exist(self, tmp_path: Path):
        with pytest.raises(ValueError):
            SPAFallbackHandler(tmp_path / "missing")

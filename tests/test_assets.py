"""
Tests for the asset fetcher, using a fake requests session.
"""

import requests

from sitemirror.assets import AssetFetcher
from sitemirror.run_config import MirrorRunConfig
from sitemirror.scope import OriginScope

from conftest import run

PAGE = "https://example.com/docs/page"


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content

    @property
    def ok(self):
        return self.status_code < 400


class FakeSession:
    """Maps URL -> FakeResponse or exception instance."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self.cookies = requests.cookies.RequestsCookieJar()
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        result = self.routes.get(url, FakeResponse(404))
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


def _fetcher(tmp_path, routes, **config):
    session = FakeSession(routes)
    fetcher = AssetFetcher(
        MirrorRunConfig(**config), OriginScope(PAGE), tmp_path, session=session
    )
    return fetcher, session


class TestAssetFetcher:
    """Same-host assets are saved; everything else is skipped or recorded."""

    def test_saves_same_host_assets(self, tmp_path):
        fetcher, _ = _fetcher(tmp_path, {
            "https://example.com/css/site.css": FakeResponse(content=b"body{}"),
            "https://example.com/docs/logo.png": FakeResponse(content=b"\x89PNG"),
        })
        report = fetcher.fetch_all(["/css/site.css", "logo.png"], PAGE)
        assert sorted(report.saved) == ["css/site.css", "docs/logo.png"]
        assert (tmp_path / "css" / "site.css").read_bytes() == b"body{}"
        assert (tmp_path / "docs" / "logo.png").read_bytes() == b"\x89PNG"

    def test_cross_host_skipped(self, tmp_path):
        fetcher, session = _fetcher(tmp_path, {})
        report = fetcher.fetch_all(
            ["https://cdn.example.com/app.js", "https://other.org/x.png", "data:image/png;base64,AA"],
            PAGE,
        )
        assert report.saved == []
        assert report.skipped == 3
        assert session.calls == []

    def test_failures_recorded_not_raised(self, tmp_path):
        fetcher, _ = _fetcher(tmp_path, {
            "https://example.com/a.js": requests.ConnectionError("refused"),
            "https://example.com/b.js": FakeResponse(500),
            "https://example.com/c.js": FakeResponse(content=b"ok"),
        })
        report = fetcher.fetch_all(["/a.js", "/b.js", "/c.js"], PAGE)
        assert report.saved == ["c.js"]
        assert len(report.errors) == 2
        assert {e.kind for e in report.errors} == {"AssetError"}
        assert "2 failed" in report.summary

    def test_timeout_passed(self, tmp_path):
        fetcher, session = _fetcher(
            tmp_path, {"https://example.com/a.js": FakeResponse(content=b"")}, asset_timeout_s=7.5
        )
        fetcher.fetch_all(["/a.js"], PAGE)
        assert session.calls == [("https://example.com/a.js", 7.5)]

    def test_deduplicated_per_job(self, tmp_path):
        fetcher, session = _fetcher(tmp_path, {"https://example.com/a.js": FakeResponse(content=b"")})
        fetcher.fetch_all(["/a.js", "/a.js#x"], PAGE)
        fetcher.fetch_all(["/a.js"], "https://example.com/other")
        assert len(session.calls) == 1

    def test_async_wrapper(self, tmp_path):
        fetcher, _ = _fetcher(tmp_path, {"https://example.com/a.js": FakeResponse(content=b"x")})
        report = run(fetcher.fetch_page_assets(["/a.js"], PAGE))
        assert report.saved == ["a.js"]

    def test_share_cookies(self, tmp_path):
        fetcher, session = _fetcher(tmp_path, {})
        fetcher.share_cookies([
            {"name": "sid", "value": "abc", "domain": "example.com", "path": "/"},
            {"value": "nameless"},
        ])
        assert session.cookies.get("sid") == "abc"
        assert len(session.cookies) == 1

    def test_close(self, tmp_path):
        fetcher, session = _fetcher(tmp_path, {})
        fetcher.close()
        assert session.closed

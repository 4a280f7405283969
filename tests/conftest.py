"""
Pytest configuration and shared fixtures for snapshot tests.

Provides an in-memory stand-in for ``requests.Session`` so crawls and asset
downloads never touch the network.
"""

import threading

import pytest
from requests.structures import CaseInsensitiveDict

from web_snapshot.config import ArchiveConfig, CrawlConfig, LocalizeConfig


def html_page(body="", title="Page"):
    """Wrap body markup in a minimal HTML document."""
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


class FakeResponse:
    """Subset of ``requests.Response`` used by the crawler and localizer."""

    def __init__(self, url, status_code=200, body=b"", content_type="text/html; charset=utf-8"):
        self.url = url
        self.status_code = status_code
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self.headers = CaseInsensitiveDict()
        if content_type:
            self.headers["Content-Type"] = content_type
        self.encoding = None
        if content_type and "charset=" in content_type:
            self.encoding = content_type.split("charset=", 1)[1].strip()
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self._body), chunk_size):
            yield self._body[start : start + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """Routes GET requests to canned responses and records every call.

    A route value may be markup (``str``), raw bytes, a ``(status, body)``
    tuple, a ``(status, body, content_type)`` tuple, or an exception to raise.
    Unknown URLs answer 404. ``redirects`` maps a requested URL to the URL
    whose route answers it, reported as the response's final URL.
    """

    def __init__(self, routes=None, redirects=None):
        self.routes = dict(routes or {})
        self.redirects = dict(redirects or {})
        self.calls = []
        self.headers = CaseInsensitiveDict()
        self._lock = threading.Lock()

    def get(self, url, timeout=None, stream=False):
        with self._lock:
            self.calls.append(url)
        url = self.redirects.get(url, url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(url, status_code=404, body="not found")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, bytes):
            return FakeResponse(url, body=route, content_type="application/octet-stream")
        if isinstance(route, str):
            return FakeResponse(url, body=route)
        if len(route) == 3:
            status, body, content_type = route
            return FakeResponse(url, status_code=status, body=body, content_type=content_type)
        status, body = route
        return FakeResponse(url, status_code=status, body=body)

    def count(self, url):
        return self.calls.count(url)


@pytest.fixture
def fake_session():
    """Factory building a FakeSession from a route table."""
    return FakeSession


@pytest.fixture
def crawl_config():
    """Crawl limits generous enough not to interfere with small test sites."""
    return CrawlConfig(max_depth=2, max_pages=20, request_timeout=1.0)


@pytest.fixture
def archive_config(tmp_path):
    """Archive settings writing into a temporary archive root."""
    return ArchiveConfig(
        archive_root=tmp_path / "archives",
        crawl=CrawlConfig(max_depth=1, max_pages=20, request_timeout=1.0),
        localize=LocalizeConfig(asset_workers=2, request_timeout=1.0),
    )

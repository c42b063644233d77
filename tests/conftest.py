from threading import Lock
from typing import Dict, List, Optional, Union

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from ui_clone.settings import Settings


class FakeResponse:
    def __init__(
        self,
        url: str,
        status_code: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ):
        self.url = url
        self.status_code = status_code
        self._body = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.encoding = "utf-8"
        self.apparent_encoding = "utf-8"

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i : i + chunk_size]

    @property
    def content(self) -> bytes:
        return self._body

    @property
    def text(self) -> str:
        return self._body.decode(self.encoding or "utf-8")

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


Route = Union[bytes, str, tuple, Exception]


class FakeSession:
    """Stands in for requests.Session; routes map URL -> body or (status, body)."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[str] = []
        self.headers: Dict[str, str] = {"User-Agent": "test-agent"}
        self.closed = False
        self._lock = Lock()

    def get(self, url, timeout=None, stream=False, **kwargs):
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(url, 404, b"not found")
        if isinstance(route, Exception):
            raise route
        headers: Dict[str, str] = {}
        if isinstance(route, tuple):
            status, body = route[0], route[1]
            if len(route) > 2:
                headers = route[2]
        else:
            status, body = 200, route
        if isinstance(body, str):
            body = body.encode("utf-8")
        return FakeResponse(url, status, body, headers)

    def count(self, url: str) -> int:
        return self.calls.count(url)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    return Settings(workers=4)


@pytest.fixture
def fake_session():
    def make(routes=None):
        return FakeSession(routes)

    return make


@pytest.fixture
def timeout_error():
    return requests.Timeout("read timed out")

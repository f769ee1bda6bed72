from collections import defaultdict, deque
from types import SimpleNamespace
from unittest.mock import AsyncMock

import aiohttp
import pytest
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from album_art import search_spotify


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload if payload is not None else {}

    async def json(self, content_type="application/json"):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    def raise_for_status(self):
        if self.status >= 400:
            url = URL("http://fake.invalid")
            info = aiohttp.RequestInfo(url, "GET", CIMultiDictProxy(CIMultiDict()), url)
            raise aiohttp.ClientResponseError(info, (), status=self.status, message="fake error")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class _FailingRequest:
    def __init__(self, exc):
        self.exc = exc

    async def __aenter__(self):
        raise self.exc

    async def __aexit__(self, *exc_info):
        return False


class FakeHTTP:
    """Routes aiohttp requests by URL to queued responses. The last response for a URL repeats."""

    def __init__(self):
        self.routes = defaultdict(deque)
        self.calls = []

    def add(self, url, *responses):
        self.routes[url].extend(responses)

    def calls_to(self, url):
        return [c for c in self.calls if c["url"] == url]

    def _request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        queue = self.routes.get(url)
        if not queue:
            raise AssertionError(f"Unexpected request to {url}")
        response = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            return _FailingRequest(response)
        return response

    def session_factory(self, *args, **kwargs):
        http = self

        class _Session:
            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                return False

            def get(self, url, **kw):
                return http._request("GET", url, **kw)

            def post(self, url, **kw):
                return http._request("POST", url, **kw)

        return _Session()


@pytest.fixture
def fake_http(monkeypatch):
    http = FakeHTTP()
    monkeypatch.setattr(aiohttp, "ClientSession", http.session_factory)
    return http


@pytest.fixture(autouse=True)
def clear_spotify_search_cache():
    search_spotify.cache_clear()
    yield
    search_spotify.cache_clear()


def make_update(user_id=1, first_name="Ada", last_name=None, message_id=42):
    message = SimpleNamespace(
        message_id=message_id,
        reply_text=AsyncMock(),
        reply_photo=AsyncMock(),
    )
    user = SimpleNamespace(id=user_id, first_name=first_name, last_name=last_name)
    return SimpleNamespace(message=message, effective_user=user, effective_message=message)


def make_context(bot_data, args=None):
    return SimpleNamespace(args=args or [], bot_data=bot_data, bot=SimpleNamespace(send_message=AsyncMock()))

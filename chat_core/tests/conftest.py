import itertools

import pytest

from chat_core.infrastructure.storage.memory_store import InMemoryStore


class FakeResponse:
    def __init__(self, chunks, status_code=200, body=""):
        self.status_code = status_code
        self._chunks = list(chunks)
        self.text = body
        self.closed = False

    def read(self):
        return self.text.encode("utf-8")

    def iter_bytes(self):
        for chunk in self._chunks:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk


class StreamContext:
    def __init__(self, response):
        self._response = response

    def __enter__(self):
        return self._response

    def __exit__(self, *args):
        self._response.closed = True
        return False


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock(monkeypatch):
    """单调递增的假时钟（每次调用 +1000ms），让 updated_at 排序可预测。"""

    ticks = itertools.count(1_700_000_000_000, 1000)

    def fake_now():
        return next(ticks)

    for target in (
        "chat_core.domain.models.now_ms",
        "chat_core.services.chat_manager.now_ms",
        "chat_core.services.project_manager.now_ms",
        "chat_core.providers.registry.now_ms",
    ):
        monkeypatch.setattr(target, fake_now)
    return fake_now


@pytest.fixture
def fake_http(monkeypatch):
    """替换 httpx.Client，记录请求并按预设返回流式响应。"""

    state = {"chunks": [], "status_code": 200, "body": "", "requests": [], "responses": []}

    class Client:
        def __init__(self, *a, **kw):
            state["client_kwargs"] = kw

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            raise AssertionError("post should not be called in stream test")

        def stream(self, method, url, json=None, headers=None):
            state["requests"].append({"method": method, "url": url, "json": json, "headers": headers})
            resp = FakeResponse(state["chunks"], state["status_code"], state["body"])
            state["responses"].append(resp)
            return StreamContext(resp)

    monkeypatch.setattr("httpx.Client", Client)
    return state

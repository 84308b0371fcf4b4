from types import SimpleNamespace
from typing import Iterable, List, Optional

import pytest

from chat_relay.app import create_app


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL", "CHAT_RELAY_PROXY_URL", "PORT"):
        monkeypatch.delenv(key, raising=False)


def make_chunk(content: Optional[str]):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeAdapter:
    """Stands in for VendorAdapter inside the Flask app."""

    def __init__(self, models=None, tokens: Iterable[str] = (), error: Exception = None, fail_after=None):
        self.models = models or []
        self.tokens = list(tokens)
        self.error = error
        self.fail_after = fail_after
        self.calls: List[tuple] = []

    def list_models(self, api_key, base_url):
        self.calls.append(("list_models", api_key, base_url))
        if self.error is not None:
            raise self.error
        return self.models

    def create_chat_stream(self, api_key, base_url, params):
        self.calls.append(("create_chat_stream", api_key, base_url, params))
        if self.error is not None and self.fail_after is None:
            raise self.error

        def gen():
            for i, token in enumerate(self.tokens):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                yield token

        return gen()


class FakeResponse:
    def __init__(self, status_code=200, chunks=(), payload=None):
        self.status_code = status_code
        self.chunks = list(chunks)
        self.payload = payload
        self.closed = False

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self.payload is None:
            raise ValueError("no JSON body")
        return self.payload

    def iter_content(self, chunk_size=None):
        for chunk in self.chunks:
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, response=None, error: Exception = None):
        self.response = response
        self.error = error
        self.requests: List[dict] = []

    def post(self, url, json=None, stream=False, timeout=None):  # noqa: A002
        self.requests.append({"url": url, "json": json, "stream": stream, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class FlaskBridgeSession:
    """Routes gateway requests into a Flask test client.

    The body is replayed in small pieces so SSE frames cross read boundaries.
    """

    def __init__(self, client, piece_size: int = 7):
        self.client = client
        self.piece_size = piece_size

    def post(self, url, json=None, stream=False, timeout=None):  # noqa: A002
        path = "/api/" + url.split("/api/", 1)[1]
        resp = self.client.post(path, json=json)
        body = resp.get_data()
        pieces = [body[i : i + self.piece_size] for i in range(0, len(body), self.piece_size)]
        return FakeResponse(resp.status_code, pieces, resp.get_json(silent=True))


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def client(fake_adapter):
    app = create_app(adapter=fake_adapter)
    app.config["TESTING"] = True
    return app.test_client()

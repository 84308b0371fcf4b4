import json
from types import SimpleNamespace

import httpx
import openai

from chat_relay.app import create_app
from chat_relay.errors import TransportError, UpstreamError
from chat_relay.models import ModelDescriptor
from chat_relay.vendor import VendorAdapter

CHAT_BODY = {
    "apiKey": "sk-test",
    "baseUrl": "https://x/v1",
    "params": {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "Hi"}]},
}


def _events(body: str):
    frames = [f for f in body.split("\n\n") if f]
    assert all(f.startswith("data: ") for f in frames)
    return [json.loads(f[len("data: ") :]) for f in frames]


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json() == {"ok": True}


def test_models_requires_api_key(client, fake_adapter):
    r = client.post("/api/models", json={"baseUrl": "https://x/v1"})
    assert r.status_code == 400
    assert r.get_json() == {"error": "API key is required", "kind": "config"}
    assert fake_adapter.calls == []


def test_models_returns_descriptors(client, fake_adapter):
    fake_adapter.models = [ModelDescriptor(id="b"), ModelDescriptor(id="a", owned_by="org")]
    r = client.post("/api/models", json={"apiKey": "k", "baseUrl": "https://x/v1"})
    assert r.status_code == 200
    assert r.get_json() == {"models": [{"id": "b"}, {"id": "a", "owned_by": "org"}]}
    assert fake_adapter.calls[0] == ("list_models", "k", "https://x/v1/")


def test_models_adapter_failure_is_500(client, fake_adapter):
    fake_adapter.error = TransportError("Connection error: refused")
    r = client.post("/api/models", json={"apiKey": "k", "baseUrl": "https://x/v1"})
    assert r.status_code == 500
    assert "refused" in r.get_json()["error"]


def test_chat_streams_content_then_done(client, fake_adapter):
    fake_adapter.tokens = ["a", "b", "c"]
    r = client.post("/api/chat", json=CHAT_BODY)

    assert r.status_code == 200
    assert r.mimetype == "text/event-stream"
    assert r.headers["Cache-Control"] == "no-cache"
    assert _events(r.get_data(as_text=True)) == [
        {"content": "a"},
        {"content": "b"},
        {"content": "c"},
        {"done": True},
    ]
    _, api_key, base_url, params = fake_adapter.calls[0]
    assert (api_key, base_url) == ("sk-test", "https://x/v1/")
    assert params.model == "gpt-4o-mini"
    assert params.temperature == 0.7


def test_chat_empty_completion_still_sends_done(client, fake_adapter):
    r = client.post("/api/chat", json=CHAT_BODY)
    assert r.mimetype == "text/event-stream"
    assert _events(r.get_data(as_text=True)) == [{"done": True}]


def test_chat_requires_api_key(client):
    body = dict(CHAT_BODY, apiKey="")
    r = client.post("/api/chat", json=body)
    assert r.status_code == 400
    assert r.get_json()["error"] == "API key is required"


def test_chat_rejects_malformed_params(client, fake_adapter):
    for params in (None, {"messages": []}, {"model": "m", "messages": "hi"},
                   {"model": "m", "messages": [{"role": "robot", "content": "x"}]}):
        r = client.post("/api/chat", json=dict(CHAT_BODY, params=params))
        assert r.status_code == 400
        assert "error" in r.get_json()
    assert fake_adapter.calls == []


def test_chat_failure_before_streaming_is_json(client, fake_adapter):
    fake_adapter.error = UpstreamError("Request failed with status 503", 503)
    r = client.post("/api/chat", json=CHAT_BODY)
    assert r.status_code == 500
    assert r.mimetype == "application/json"
    assert r.get_json() == {"error": "Request failed with status 503", "kind": "upstream"}


def test_chat_lazy_failure_on_first_token_is_json(client, fake_adapter):
    fake_adapter.tokens = ["never"]
    fake_adapter.error = UpstreamError("boom")
    fake_adapter.fail_after = 0
    r = client.post("/api/chat", json=CHAT_BODY)
    assert r.status_code == 500
    assert r.get_json() == {"error": "boom", "kind": "upstream"}


def test_chat_failure_mid_stream_sends_error_frame(client, fake_adapter):
    fake_adapter.tokens = ["a", "b", "c"]
    fake_adapter.error = UpstreamError("connection reset")
    fake_adapter.fail_after = 2
    r = client.post("/api/chat", json=CHAT_BODY)
    assert r.status_code == 200
    assert _events(r.get_data(as_text=True)) == [
        {"content": "a"},
        {"content": "b"},
        {"error": "connection reset", "kind": "upstream"},
    ]


def test_chat_upstream_401_never_opens_event_stream():
    request = httpx.Request("POST", "https://x/v1/chat/completions")
    auth_error = openai.AuthenticationError(
        "Incorrect API key provided", response=httpx.Response(401, request=request), body=None
    )

    def create(**kwargs):
        raise auth_error

    sdk = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    app = create_app(adapter=VendorAdapter(client_factory=lambda *args: sdk))
    r = app.test_client().post("/api/chat", json=CHAT_BODY)

    assert r.status_code == 500
    assert "text/event-stream" not in r.headers["Content-Type"]
    assert "Authentication" in r.get_json()["error"]


def test_cors_headers_present(client, fake_adapter):
    r = client.post(
        "/api/models",
        json={"apiKey": "k"},
        headers={"Origin": "http://localhost:8080"},
    )
    assert r.headers.get("Access-Control-Allow-Origin") in ("*", "http://localhost:8080")


def test_models_transport_failure_is_tagged(client, fake_adapter):
    fake_adapter.error = TransportError("Connection error: refused")
    r = client.post("/api/models", json={"apiKey": "k"})
    assert r.status_code == 500
    assert r.get_json()["kind"] == "transport"


def test_chat_transport_failure_mid_stream_is_tagged(client, fake_adapter):
    fake_adapter.tokens = ["a", "b"]
    fake_adapter.error = TransportError("Connection error: reset")
    fake_adapter.fail_after = 1
    r = client.post("/api/chat", json=CHAT_BODY)
    assert _events(r.get_data(as_text=True)) == [
        {"content": "a"},
        {"error": "Connection error: reset", "kind": "transport"},
    ]

"""Local proxy that relays OpenAI-compatible chat completions as SSE."""

from __future__ import annotations

from typing import Iterator, Optional

from flask import Blueprint, Flask, Response, current_app, jsonify, request, stream_with_context
from flask_cors import CORS

from .config import ProxyConfig
from .errors import ChatRelayError, ConfigError, error_kind
from .logging import configure_logging, get_logger
from .models import GenerateParams
from .sse import encode_event
from .vendor import VendorAdapter, normalize_base_url

logger = get_logger(__name__)

ADAPTER_KEY = "vendor_adapter"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

api = Blueprint("api", __name__, url_prefix="/api")


def _adapter() -> VendorAdapter:
    return current_app.extensions[ADAPTER_KEY]


def _error(message: str, status: int, kind: str = "upstream"):
    return jsonify({"error": message, "kind": kind}), status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _read_connection(data: dict):
    api_key = data.get("apiKey")
    if not api_key or not isinstance(api_key, str):
        raise ConfigError("API key is required")
    base_url = data.get("baseUrl")
    if base_url is not None and not isinstance(base_url, str):
        raise ConfigError("baseUrl must be a string")
    return api_key, normalize_base_url(base_url)


@api.route("/health", methods=["GET"])
def health():
    return jsonify({"ok": True})


@api.route("/models", methods=["POST"])
def list_models():
    data = _json_body()
    try:
        api_key, base_url = _read_connection(data)
    except ConfigError as exc:
        return _error(str(exc), 400, "config")

    try:
        models = _adapter().list_models(api_key, base_url)
    except ChatRelayError as exc:
        logger.error("Error fetching models from %s: %s", base_url, exc)
        return _error(str(exc) or "Failed to fetch models", 500, error_kind(exc))
    except Exception as exc:  # pragma: no cover - external dependency
        logger.exception("Unexpected error fetching models")
        return _error(str(exc) or "Failed to fetch models", 500)

    return jsonify({"models": [m.to_dict() for m in models]})


@api.route("/chat", methods=["POST"])
def chat():
    data = _json_body()
    try:
        api_key, base_url = _read_connection(data)
        params = GenerateParams.from_payload(data.get("params"))
    except ConfigError as exc:
        return _error(str(exc), 400, "config")

    # Nothing is sent to the client until the first token (or the end of the
    # stream) has been read, so early failures still get a JSON error body.
    try:
        tokens = iter(_adapter().create_chat_stream(api_key, base_url, params))
        first: Optional[str] = next(tokens, None)
    except ChatRelayError as exc:
        logger.error("Error in chat stream: %s", exc)
        return _error(str(exc) or "Stream error", 500, error_kind(exc))
    except Exception as exc:  # pragma: no cover - external dependency
        logger.exception("Unexpected error opening chat stream")
        return _error(str(exc) or "Stream error", 500)

    def generate() -> Iterator[str]:
        try:
            if first:
                yield encode_event({"content": first})
            for token in tokens:
                if token:
                    yield encode_event({"content": token})
        except Exception as exc:
            logger.error("Chat stream failed after it started: %s", exc)
            yield encode_event({"error": str(exc) or "Stream error", "kind": error_kind(exc)})
            return
        yield encode_event({"done": True})

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers=SSE_HEADERS,
    )


def create_app(adapter: Optional[VendorAdapter] = None, proxy_config: Optional[ProxyConfig] = None) -> Flask:
    proxy_config = proxy_config or ProxyConfig()
    app = Flask(__name__)
    app.extensions[ADAPTER_KEY] = adapter or VendorAdapter(timeout=proxy_config.timeout)
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    app.register_blueprint(api)
    return app


def main(proxy_config: Optional[ProxyConfig] = None) -> None:
    proxy_config = proxy_config or ProxyConfig.from_env()
    app = create_app(proxy_config=proxy_config)
    logger.info("Server running on http://%s:%s", proxy_config.host, proxy_config.port)
    app.run(
        host=proxy_config.host,
        port=proxy_config.port,
        debug=proxy_config.debug,
        threaded=True,
    )


if __name__ == "__main__":
    from .config import load_env_once, log_level

    load_env_once()
    configure_logging(log_level())
    main()

"""Adapter around the OpenAI SDK for any OpenAI-compatible endpoint."""

from __future__ import annotations

from typing import Any, Callable, Iterator, List, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    OpenAI,
    OpenAIError,
)

from . import config
from .errors import UpstreamError, TransportError, describe_status, transport_message
from .logging import get_logger
from .models import GenerateParams, ModelDescriptor

logger = get_logger(__name__)

ClientFactory = Callable[[str, str, float], Any]


def normalize_base_url(base_url: Optional[str]) -> str:
    """Trim the URL and make sure it ends with a single trailing slash."""
    url = (base_url or "").strip()
    if not url:
        return config.DEFAULT_BASE_URL
    return url if url.endswith("/") else f"{url}/"


def _default_client_factory(api_key: str, base_url: str, timeout: float) -> OpenAI:
    return OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)


def _translate(exc: OpenAIError) -> Exception:
    if isinstance(exc, APIStatusError):
        detail = getattr(exc, "message", None) or str(exc)
        return UpstreamError(describe_status(exc.status_code, detail), exc.status_code)
    if isinstance(exc, APIConnectionError):
        return TransportError(transport_message(exc))
    return UpstreamError(str(exc) or "Upstream request failed")


def _normalize_model_list(payload: Any) -> List[ModelDescriptor]:
    if isinstance(payload, dict):
        data = payload.get("data") or []
    else:
        data = getattr(payload, "data", None) or []

    models: List[ModelDescriptor] = []
    for item in data:
        descriptor = ModelDescriptor.from_payload(item)
        if descriptor is not None:
            models.append(descriptor)
    return models


def _delta_content(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


def _close(resource: Any) -> None:
    close = getattr(resource, "close", None)
    if callable(close):
        close()


class VendorAdapter:
    """Calls the vendor API on behalf of the proxy.

    One instance is created per application and handed to ``create_app``. Each
    call builds its own SDK client and closes it when the call is finished.
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        timeout: float = config.DEFAULT_TIMEOUT,
    ) -> None:
        self._client_factory = client_factory or _default_client_factory
        self._timeout = timeout

    def _client(self, api_key: str, base_url: Optional[str]):
        return self._client_factory(api_key, normalize_base_url(base_url), self._timeout)

    def list_models(self, api_key: str, base_url: Optional[str]) -> List[ModelDescriptor]:
        client = self._client(api_key, base_url)
        try:
            response = client.models.list()
        except OpenAIError as exc:
            raise _translate(exc) from exc
        finally:
            _close(client)
        return _normalize_model_list(response)

    def create_chat_stream(
        self, api_key: str, base_url: Optional[str], params: GenerateParams
    ) -> Iterator[str]:
        """Open a streaming completion and return an iterator of delta tokens.

        The HTTP request is sent before this returns, so authentication and
        rate-limit failures surface here rather than on first iteration.
        """
        client = self._client(api_key, base_url)
        kwargs = params.to_payload()
        kwargs["stream"] = True
        try:
            stream = client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            _close(client)
            raise _translate(exc) from exc
        return self._iter_deltas(client, stream)

    def _iter_deltas(self, client, stream) -> Iterator[str]:
        try:
            for chunk in stream:
                content = _delta_content(chunk)
                if content:
                    yield content
        except OpenAIError as exc:
            raise _translate(exc) from exc
        finally:
            _close(stream)
            _close(client)

"""Client of the local proxy: model listing and streamed chat completions."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from . import config
from .errors import (
    ChatRelayError,
    ConfigError,
    TransportError,
    UpstreamError,
    describe_status,
    error_from_kind,
    transport_message,
)
from .logging import get_logger
from .models import GenerateParams, ModelDescriptor
from .sse import SSEDecoder
from .vendor import normalize_base_url

logger = get_logger(__name__)

Notify = Callable[[ChatRelayError], None]


def _ignore(_exc: ChatRelayError) -> None:
    return None


class ApiGateway:
    """Talks to ``/api/models`` and ``/api/chat`` on the local proxy.

    The API key and base URL are fixed for the lifetime of an instance; the
    chat store builds a new gateway whenever the settings change.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str],
        proxy_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        notify: Optional[Notify] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = normalize_base_url(base_url)
        self.proxy_url = (proxy_url or config.proxy_url()).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.request_timeout()
        self.notify = notify or _ignore

    def _connection(self) -> Dict[str, str]:
        return {"apiKey": self.api_key, "baseUrl": self.base_url}

    def _post(self, path: str, body: Dict[str, Any], stream: bool = False) -> requests.Response:
        url = f"{self.proxy_url}/api/{path}"
        try:
            response = self.session.post(url, json=body, stream=stream, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(transport_message(exc)) from exc

        if response.ok:
            return response

        detail = ""
        kind = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            detail = payload["error"]
            kind = payload.get("kind")
        response.close()
        if response.status_code == 400:
            raise ConfigError(detail or "Invalid request")
        if kind in ("config", "transport") and detail:
            raise error_from_kind(kind, detail, response.status_code)
        raise UpstreamError(describe_status(response.status_code, detail), response.status_code)

    def fetch_models(self) -> List[ModelDescriptor]:
        """Return the vendor's models, or an empty list after notifying on failure."""
        if not self.api_key:
            self.notify(ConfigError("Please set your OpenAI API key in settings"))
            return []
        try:
            response = self._post("models", self._connection())
            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamError("Proxy returned an invalid model list") from exc
        except ChatRelayError as exc:
            logger.error("Error fetching models: %s", exc)
            self.notify(exc)
            return []

        items = payload.get("models") if isinstance(payload, dict) else None
        models: List[ModelDescriptor] = []
        for item in items or []:
            descriptor = ModelDescriptor.from_payload(item)
            if descriptor is not None:
                models.append(descriptor)
        return models

    def iter_chat(self, params: GenerateParams) -> Iterator[str]:
        """Yield content tokens until the proxy reports ``done``.

        Returning normally means the generation completed; failures raise
        ``UpstreamError`` or ``TransportError``.
        """
        body = dict(self._connection(), params=params.to_payload())
        response = self._post("chat", body, stream=True)
        decoder = SSEDecoder()
        try:
            for chunk in response.iter_content(chunk_size=None):
                for event in decoder.feed(chunk):
                    if self._is_terminal(event):
                        return
                    content = event.get("content")
                    if isinstance(content, str) and content:
                        yield content
            for event in decoder.flush():
                if self._is_terminal(event):
                    return
                content = event.get("content")
                if isinstance(content, str) and content:
                    yield content
        except requests.RequestException as exc:
            raise TransportError(transport_message(exc)) from exc
        finally:
            response.close()

    @staticmethod
    def _is_terminal(event: Dict[str, Any]) -> bool:
        error = event.get("error")
        if error:
            raise error_from_kind(event.get("kind"), str(error))
        return bool(event.get("done"))

    def stream_chat(
        self,
        params: GenerateParams,
        on_chunk: Callable[[str], None],
        on_done: Callable[[], None],
        on_error: Callable[[ChatRelayError], None],
    ) -> None:
        """Callback form of ``iter_chat``: exactly one of on_done/on_error fires."""
        try:
            for token in self.iter_chat(params):
                on_chunk(token)
        except ChatRelayError as exc:
            logger.error("Stream error: %s", exc)
            on_error(exc)
            return
        on_done()

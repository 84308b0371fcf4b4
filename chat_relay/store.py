"""Conversation state: history, generation status, settings and models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from . import config
from .errors import ChatRelayError, ConfigError
from .gateway import ApiGateway
from .logging import get_logger
from .models import ConnectionSettings, GenerateParams, Message, ModelDescriptor
from .settings import SettingsStorage
from .vendor import normalize_base_url

logger = get_logger(__name__)

Listener = Callable[["ChatStore"], None]
GatewayFactory = Callable[..., ApiGateway]


@dataclass
class Notice:
    """A user-facing message, the terminal equivalent of a toast."""

    level: str
    message: str
    error: Optional[ChatRelayError] = None


@dataclass
class SamplingOptions:
    temperature: float = config.DEFAULT_TEMPERATURE
    max_tokens: Optional[int] = None
    top_p: float = config.DEFAULT_TOP_P
    frequency_penalty: float = config.DEFAULT_FREQUENCY_PENALTY
    presence_penalty: float = config.DEFAULT_PRESENCE_PENALTY


@dataclass
class GenerationSession:
    """Tokens received for one in-flight request.

    The accumulated text is merged into ``ChatStore.messages`` as a fresh
    ``Message`` at each update point; the session never hands out a reference
    that the store later mutates.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    parts: List[str] = field(default_factory=list)
    message_index: Optional[int] = None

    def append(self, token: str) -> None:
        self.parts.append(token)

    @property
    def text(self) -> str:
        return "".join(self.parts)


class ChatStore:
    def __init__(
        self,
        storage: Optional[SettingsStorage] = None,
        gateway_factory: Optional[GatewayFactory] = None,
        proxy_url: Optional[str] = None,
    ) -> None:
        self.storage = storage or SettingsStorage()
        self.proxy_url = proxy_url
        self._gateway_factory = gateway_factory or self._default_gateway
        self.settings: ConnectionSettings = self.storage.load()
        self.messages: List[Message] = []
        self.available_models: List[ModelDescriptor] = []
        self.notices: List[Notice] = []
        self.sampling = SamplingOptions()
        self.system_prompt = ""
        self.is_loading = False
        self._session: Optional[GenerationSession] = None
        self._listeners: List[Listener] = []
        self._gateway = self._build_gateway()

    # ----- plumbing -----

    def _default_gateway(self, api_key: str, base_url: str, notify) -> ApiGateway:
        return ApiGateway(api_key, base_url, proxy_url=self.proxy_url, notify=notify)

    def _build_gateway(self) -> ApiGateway:
        return self._gateway_factory(
            self.settings.api_key, self.settings.base_url, self._notify_error
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _notice(self, level: str, message: str, error: Optional[ChatRelayError] = None) -> None:
        self.notices.append(Notice(level, message, error))
        self._emit()

    def _notify_error(self, exc: ChatRelayError) -> None:
        self._notice("error", str(exc), exc)

    @property
    def is_generating(self) -> bool:
        return self._session is not None

    @property
    def session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    # ----- settings and models -----

    def refresh_models(self) -> List[ModelDescriptor]:
        if not self.settings.api_key:
            return self.available_models
        self.is_loading = True
        self._emit()
        try:
            models = self._gateway.fetch_models()
        finally:
            self.is_loading = False
        self.available_models = sorted(models, key=lambda m: m.id)
        self._emit()
        return self.available_models

    def update_config(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        """Persist new settings; they apply from the next request on."""
        previous = self.settings
        updated = ConnectionSettings(
            api_key=previous.api_key if api_key is None else api_key.strip(),
            base_url=previous.base_url if base_url is None else normalize_base_url(base_url),
            model=previous.model if model is None else model.strip(),
        )
        self.storage.save(updated)
        self.settings = updated
        self._gateway = self._build_gateway()
        self._emit()

        if updated.api_key != previous.api_key or updated.base_url != previous.base_url:
            self.refresh_models()

        self._notice("success", "Settings updated successfully")

    def select_model(self, model: str) -> None:
        self.update_config(model=model)

    # ----- conversation -----

    def clear_messages(self) -> None:
        if self.is_generating:
            return
        self.messages = []
        self._emit()

    def _build_params(self) -> GenerateParams:
        history = [Message(m.role, m.content) for m in self.messages]
        if self.system_prompt.strip():
            history.insert(0, Message("system", self.system_prompt))
        return GenerateParams(
            model=self.settings.model,
            messages=history,
            temperature=self.sampling.temperature,
            max_tokens=self.sampling.max_tokens,
            top_p=self.sampling.top_p,
            frequency_penalty=self.sampling.frequency_penalty,
            presence_penalty=self.sampling.presence_penalty,
        )

    def send_message(self, content: str) -> bool:
        """Append the user message and stream the reply.

        Returns False without touching the history when the content is blank,
        a generation is already running, or no API key is configured.
        """
        if not content or not content.strip() or self.is_generating:
            return False
        if not self.settings.api_key:
            self._notify_error(ConfigError("Please set your OpenAI API key in settings"))
            return False

        session = GenerationSession()
        self.messages = self.messages + [Message("user", content)]
        self._session = session
        self._emit()

        gateway = self._gateway
        params = self._build_params()
        try:
            gateway.stream_chat(
                params,
                on_chunk=lambda token: self._on_chunk(session.id, token),
                on_done=lambda: self._finish(session.id),
                on_error=lambda exc: self._fail(session.id, exc),
            )
        finally:
            # Interrupted without a terminal callback: keep what arrived.
            if self._session is session:
                logger.info("Generation %s interrupted", session.id)
                self._end(session, stopped=True)
        return True

    def _active(self, session_id: str) -> Optional[GenerationSession]:
        if self._session is None or self._session.id != session_id:
            return None
        return self._session

    def _merge(self, session: GenerationSession, stopped: bool = False) -> None:
        if not session.parts:
            return
        message = Message("assistant", session.text, stopped=stopped)
        messages = list(self.messages)
        if session.message_index is None:
            session.message_index = len(messages)
            messages.append(message)
        else:
            messages[session.message_index] = message
        self.messages = messages

    def _on_chunk(self, session_id: str, token: str) -> None:
        session = self._active(session_id)
        if session is None:
            logger.debug("Dropping chunk for stale generation %s", session_id)
            return
        session.append(token)
        self._merge(session)
        self._emit()

    def _end(self, session: GenerationSession, stopped: bool = False) -> None:
        if stopped:
            self._merge(session, stopped=True)
        self._session = None
        self._emit()

    def _finish(self, session_id: str) -> None:
        session = self._active(session_id)
        if session is not None:
            self._end(session)

    def _fail(self, session_id: str, exc: ChatRelayError) -> None:
        session = self._active(session_id)
        if session is None:
            return
        self._end(session, stopped=True)
        self._notice("error", f"Error: {exc}", exc)

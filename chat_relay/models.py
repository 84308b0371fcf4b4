"""Plain data types passed between the proxy, the gateway and the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import config
from .errors import ConfigError

ROLES = ("system", "user", "assistant")


@dataclass
class Message:
    role: str
    content: str
    # Set locally when a generation failed part-way; never sent upstream.
    stopped: bool = False

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_payload(cls, item: Any) -> "Message":
        if not isinstance(item, dict):
            raise ConfigError("Each message must be an object with role and content")
        role = item.get("role")
        content = item.get("content")
        if role not in ROLES:
            raise ConfigError(f"Unsupported message role: {role!r}")
        if not isinstance(content, str):
            raise ConfigError("Message content must be a string")
        return cls(role=role, content=content)


@dataclass
class ModelDescriptor:
    """One entry of the vendor's model listing."""

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    created: Optional[int] = None
    owned_by: Optional[str] = None

    @classmethod
    def from_payload(cls, item: Any) -> Optional["ModelDescriptor"]:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        if isinstance(item, dict):
            model_id = item.get("id") or item.get("model")
            get = item.get
        else:
            model_id = getattr(item, "id", None)
            get = lambda key: getattr(item, key, None)  # noqa: E731
        if not model_id:
            return None
        created = get("created")
        try:
            created = int(created) if created is not None else None
        except (TypeError, ValueError):
            created = None
        return cls(
            id=str(model_id),
            name=get("name"),
            description=get("description"),
            created=created,
            owned_by=get("owned_by"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        for key in ("name", "description", "created", "owned_by"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class GenerateParams:
    model: str
    messages: List[Message] = field(default_factory=list)
    temperature: float = config.DEFAULT_TEMPERATURE
    max_tokens: Optional[int] = None
    top_p: float = config.DEFAULT_TOP_P
    frequency_penalty: float = config.DEFAULT_FREQUENCY_PENALTY
    presence_penalty: float = config.DEFAULT_PRESENCE_PENALTY

    @classmethod
    def from_payload(cls, payload: Any) -> "GenerateParams":
        if not isinstance(payload, dict):
            raise ConfigError("params must be an object")
        model = payload.get("model")
        if not model or not isinstance(model, str):
            raise ConfigError("params.model is required")
        raw_messages = payload.get("messages")
        if not isinstance(raw_messages, list):
            raise ConfigError("params.messages must be a list")
        messages = [Message.from_payload(item) for item in raw_messages]

        return cls(
            model=model,
            messages=messages,
            temperature=_number(payload, "temperature", config.DEFAULT_TEMPERATURE),
            max_tokens=_max_tokens(payload.get("max_tokens")),
            top_p=_number(payload, "top_p", config.DEFAULT_TOP_P),
            frequency_penalty=_number(
                payload, "frequency_penalty", config.DEFAULT_FREQUENCY_PENALTY
            ),
            presence_penalty=_number(
                payload, "presence_penalty", config.DEFAULT_PRESENCE_PENALTY
            ),
        )

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        if self.max_tokens is not None:
            data["max_tokens"] = self.max_tokens
        return data


@dataclass
class ConnectionSettings:
    api_key: str = ""
    base_url: str = config.DEFAULT_BASE_URL
    model: str = config.DEFAULT_MODEL


def _number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigError(f"params.{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"params.{key} must be a number") from None


def _max_tokens(value: Any) -> Optional[int]:
    if value in ("", None):
        return None
    try:
        max_tokens = int(value)
    except (TypeError, ValueError):
        return None
    if max_tokens <= 0:
        return None
    return max_tokens

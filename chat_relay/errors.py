"""Error taxonomy shared by the proxy, the gateway and the chat store."""

from __future__ import annotations

from typing import Optional


class ChatRelayError(RuntimeError):
    """Base exception for every failure surfaced by chat-relay."""


class ConfigError(ChatRelayError):
    """Raised when required settings are missing or a request is malformed."""


class UpstreamError(ChatRelayError):
    """Raised when the vendor API (or the proxy in front of it) answers non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(ChatRelayError):
    """Raised when the endpoint cannot be reached at all."""


class ParseError(ChatRelayError):
    """Raised for a malformed SSE frame. Logged by the decoder, never fatal."""


TRANSPORT_HINT = (
    "Check that the endpoint URL is reachable and speaks the OpenAI-compatible API."
)


def describe_status(status_code: Optional[int], detail: str = "") -> str:
    """Best-effort user-facing message for an upstream HTTP status."""
    if status_code == 401:
        return "Authentication failed. Check your API key."
    if status_code == 429:
        return "Rate limit exceeded. Wait a moment before trying again."
    if detail:
        return detail
    if status_code:
        return f"Request failed with status {status_code}"
    return "Request failed"


def transport_message(exc: BaseException) -> str:
    return f"Connection error: {exc}. {TRANSPORT_HINT}"


_KINDS = (
    (ConfigError, "config"),
    (TransportError, "transport"),
    (ParseError, "parse"),
)


def error_kind(exc: BaseException) -> str:
    """Short tag sent next to the proxy's error message."""
    for cls, kind in _KINDS:
        if isinstance(exc, cls):
            return kind
    return "upstream"


def error_from_kind(kind: Optional[str], message: str, status_code: Optional[int] = None) -> ChatRelayError:
    if kind == "config":
        return ConfigError(message)
    if kind == "transport":
        return TransportError(message)
    return UpstreamError(message, status_code)

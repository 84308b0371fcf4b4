"""Environment-driven defaults for the proxy server and the chat client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_DOTENV_LOADED = False


def load_env_once(env_file: Optional[str] = None) -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    env_path = Path(env_file or os.getenv("ENV_FILE", ".env"))
    if env_path.exists():
        load_dotenv(env_path, override=False)
    _DOTENV_LOADED = True


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_int(key: str, default: int) -> int:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ----- Defaults -----
DEFAULT_BASE_URL = "https://api.openai.com/v1/"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_PORT = 5000
DEFAULT_HOST = "127.0.0.1"
DEFAULT_TIMEOUT = 120.0
DEFAULT_SETTINGS_PATH = Path.home() / ".chat_relay" / "settings.json"

# Sampling defaults applied when a request leaves them out
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1.0
DEFAULT_FREQUENCY_PENALTY = 0.0
DEFAULT_PRESENCE_PENALTY = 0.0


def initial_base_url() -> str:
    return _env("OPENAI_BASE_URL", DEFAULT_BASE_URL)


def initial_model() -> str:
    return _env("OPENAI_MODEL", DEFAULT_MODEL)


def initial_api_key() -> str:
    return _env("OPENAI_API_KEY", "")


def settings_path() -> Path:
    raw = _env("CHAT_RELAY_SETTINGS")
    if raw:
        return Path(raw).expanduser()
    return DEFAULT_SETTINGS_PATH


def proxy_url() -> str:
    port = _env_int("PORT", DEFAULT_PORT)
    return _env("CHAT_RELAY_PROXY_URL", f"http://{DEFAULT_HOST}:{port}")


def log_level() -> str:
    return _env("CHAT_RELAY_LOG_LEVEL", "INFO")


def request_timeout() -> float:
    return _env_float("CHAT_RELAY_TIMEOUT", DEFAULT_TIMEOUT)


@dataclass
class ProxyConfig:
    """Settings for the local proxy server."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        load_env_once()
        return cls(
            host=_env("CHAT_RELAY_HOST", DEFAULT_HOST),
            port=_env_int("PORT", DEFAULT_PORT),
            debug=(_env("CHAT_RELAY_DEBUG", "") or "").lower() in {"1", "true", "yes"},
            timeout=request_timeout(),
        )

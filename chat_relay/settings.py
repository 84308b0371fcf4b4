"""Key-value storage for connection settings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from . import config
from .logging import get_logger
from .models import ConnectionSettings
from .vendor import normalize_base_url

logger = get_logger(__name__)

API_KEY_KEY = "openai-api-key"
BASE_URL_KEY = "openai-base-url"
MODEL_KEY = "openai-model"


class SettingsStorage:
    """A flat JSON object on disk holding string values.

    Every ``set`` rewrites the whole file; the last writer wins.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else config.settings_path()

    def _read(self) -> Dict[str, str]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read settings from %s: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def load(self) -> ConnectionSettings:
        data = self._read()
        return ConnectionSettings(
            api_key=data.get(API_KEY_KEY) or config.initial_api_key(),
            base_url=normalize_base_url(data.get(BASE_URL_KEY) or config.initial_base_url()),
            model=data.get(MODEL_KEY) or config.initial_model(),
        )

    def save(self, settings: ConnectionSettings) -> None:
        # Empty values are not written, so clearing a field keeps the stored one.
        if settings.api_key:
            self.set(API_KEY_KEY, settings.api_key)
        if settings.base_url:
            self.set(BASE_URL_KEY, settings.base_url)
        if settings.model:
            self.set(MODEL_KEY, settings.model)


class MemorySettingsStorage(SettingsStorage):
    """In-process storage with the same interface, for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.path = None
        self._data: Dict[str, str] = dict(initial or {})

    def _read(self) -> Dict[str, str]:
        return dict(self._data)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

"""User preferences: the injected settings provider and its JSON store."""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from dual_n_back.config import SessionConfig
from dual_n_back.constants import SETTINGS_KEY

logger = logging.getLogger(__name__)


class SettingsProvider(Protocol):
    """What the engine reads from the settings collaborator."""

    @property
    def is_adaptive_difficulty_enabled(self) -> bool: ...


@dataclass
class Settings:
    adaptive_difficulty_enabled: bool = False
    high_contrast: bool = False
    font_size: str = "default"
    last_config: SessionConfig = field(default_factory=SessionConfig)

    @property
    def is_adaptive_difficulty_enabled(self) -> bool:
        return self.adaptive_difficulty_enabled

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_config"] = self.last_config.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if isinstance(known.get("last_config"), dict):
            known["last_config"] = SessionConfig.from_dict(known["last_config"])
        return cls(**known)


class PreferenceStore:
    """
    Key-value store persisted as a single JSON object on disk.
    Read/write failures are logged and degrade to None / no-op.
    """

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.logger.error("Failed to read preferences from %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            self.logger.error("Ignoring malformed preferences file %s", self.path)
            return {}
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            self.logger.error("Failed to write preferences to %s: %s", self.path, e)

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def get_object(self, key: str) -> Optional[Any]:
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            self.logger.error("Failed to decode object %r: %s", key, e)
            return None

    def set_object(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))


def load_settings(store: PreferenceStore) -> Settings:
    data = store.get_object(SETTINGS_KEY)
    if not isinstance(data, dict):
        return Settings()
    try:
        return Settings.from_dict(data)
    except (TypeError, ValueError) as e:
        logger.error("Discarding invalid settings: %s", e)
        return Settings()


def save_settings(store: PreferenceStore, settings: Settings) -> None:
    store.set_object(SETTINGS_KEY, settings.to_dict())

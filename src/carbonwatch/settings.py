from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from carbonwatch.config import SettingsConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".carbonwatch" / "settings.yaml"


class SettingsStore:
    """User settings persisted as YAML on top of the configured defaults."""

    def __init__(self, path: Path, defaults: SettingsConfig | None = None) -> None:
        self.path = path
        self.defaults = defaults or SettingsConfig()
        self._current = self.defaults.model_copy()

    @property
    def current(self) -> SettingsConfig:
        return self._current.model_copy()

    def load(self) -> SettingsConfig:
        if not self.path.exists():
            self._current = self.defaults.model_copy()
            return self.current

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                stored = yaml.safe_load(handle) or {}
            if not isinstance(stored, Mapping):
                raise ValueError(f"expected a mapping, got {type(stored).__name__}")
            merged = {**self.defaults.model_dump(), **dict(stored)}
            self._current = SettingsConfig.model_validate(merged)
        except (yaml.YAMLError, ValueError) as exc:
            LOGGER.warning("Ignoring invalid stored settings at %s: %s", self.path, exc)
            self._current = self.defaults.model_copy()
        return self.current

    def save(self) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self._current.model_dump(), handle, sort_keys=False)
        return self.path

    def update(self, **changes: Any) -> SettingsConfig:
        candidate = {**self._current.model_dump(), **changes}
        self._current = SettingsConfig.model_validate(candidate)
        self.save()
        return self.current

    def reset(self) -> SettingsConfig:
        if self.path.exists():
            self.path.unlink()
        self._current = self.defaults.model_copy()
        return self.current

from __future__ import annotations

import logging
import os
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Mapping

from .models import Settings
from .sources import env_overrides, load_from_toml

logger = logging.getLogger(__name__)

ReloadListener = Callable[[Settings], None]


class ConfigManager:
    """Loads settings from TOML + environment and tells dependents when they change.

    Components that cache objects built from settings (the database engine,
    the blob store client) register a listener so a reload or an ``override()``
    in tests never leaves them pointing at stale values.
    """

    def __init__(self, *, env_var: str = "CONFIG_FILE", default_file: str = "config.toml") -> None:
        self._env_var = env_var
        self._default_file = default_file
        self._lock = RLock()
        self._listeners: list[ReloadListener] = []
        self._settings = self._load()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config_path(self) -> Path:
        return Path(os.environ.get(self._env_var, self._default_file))

    def on_reload(self, listener: ReloadListener) -> ReloadListener:
        with self._lock:
            self._listeners.append(listener)
        return listener

    def reload(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        return self.replace(self._load(overrides))

    def replace(self, new_settings: Settings) -> Settings:
        with self._lock:
            self._settings = new_settings
            listeners = list(self._listeners)
        for listener in listeners:
            listener(new_settings)
        return new_settings

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            data = self._settings.model_dump()
        for secret in ("jwt_secret", "s3_secret_key", "smtp_password"):
            if data.get(secret):
                data[secret] = "***"
        return data

    def _load(self, overrides: Mapping[str, Any] | None = None) -> Settings:
        path = self.config_path
        data = load_from_toml(path)
        if data:
            logger.info(f"Loaded {len(data)} settings from {path}")
        data.update(env_overrides(Settings, os.environ))
        if overrides:
            data.update(overrides)
        return Settings(**data)

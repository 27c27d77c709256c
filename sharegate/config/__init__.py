from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from .manager import ConfigManager, ReloadListener
from .models import Settings

__all__ = ["Settings", "get_settings", "on_reload", "override"]

_manager = ConfigManager()


def get_settings() -> Settings:
    return _manager.settings


def on_reload(listener: ReloadListener) -> ReloadListener:
    """Call ``listener`` with the new settings whenever they are replaced."""
    return _manager.on_reload(listener)


@contextmanager
def override(**values: Any) -> Iterator[Settings]:
    """Temporarily apply ``values`` on top of the loaded settings."""
    previous = _manager.settings
    try:
        yield _manager.reload(overrides=values)
    finally:
        _manager.replace(previous)

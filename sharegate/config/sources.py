from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Type

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover - fallback for Python <3.11
    import tomli as tomllib  # type: ignore

from pydantic import BaseModel

from .models import Settings

logger = logging.getLogger(__name__)

# Table names accepted in config.toml; ``[smtp] host`` maps to ``smtp_host``
SECTIONS = ("jwt", "database", "blob", "s3", "smtp", "share")


def load_from_toml(path: str | Path | None, model: Type[BaseModel] = Settings) -> dict[str, Any]:
    """Read ``path`` into flat field names known to ``model``.

    Unknown tables and keys are logged and dropped rather than passed on to
    validation.
    """
    if not path:
        return {}

    file_path = Path(path)
    if not file_path.exists():
        return {}

    with file_path.open("rb") as handle:
        data = tomllib.load(handle)

    fields = model.model_fields
    values: dict[str, Any] = {}
    for key, value in data.items():
        if not isinstance(value, Mapping):
            candidates = {key: value}
        elif key in SECTIONS:
            candidates = {f"{key}_{subkey}": subval for subkey, subval in value.items()}
        else:
            logger.warning(f"Ignoring unknown section [{key}] in {file_path}")
            continue
        for name, item in candidates.items():
            if name in fields:
                values[name] = item
            else:
                logger.warning(f"Ignoring unknown setting {name} in {file_path}")
    return values


def env_overrides(model: Type[BaseModel], environ: Mapping[str, str]) -> dict[str, Any]:
    return {field: environ[field.upper()] for field in model.model_fields if field.upper() in environ}

"""Config file loading and auto-discovery for Signal Governor.

Searches for ``governor.yaml`` in the current directory and parent
directories, parses it, and resolves relative paths against the config
file's location. Sections are kept as plain mappings here and validated
by the component that owns them (see ``Governor``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "governor.yaml"

_PATH_KEYS = ("catalog", "store")
_MAPPING_KEYS = ("safety", "learning", "escalation")
_LIST_KEYS = ("throttles", "channels")


class ConfigError(Exception):
    """Raised when a config file is missing or malformed."""


@dataclass(frozen=True)
class GovernorConfig:
    """Parsed Signal Governor configuration."""

    config_path: Path | None = None
    catalog: str | None = None
    store: str | None = None
    safety: dict[str, Any] | None = None
    learning: dict[str, Any] | None = None
    throttles: list[dict[str, Any]] | None = None
    channels: list[dict[str, Any]] = field(default_factory=list)
    escalation: dict[str, Any] | None = None
    delivery_timeout_seconds: float = 10.0
    decision_interval_seconds: float = 30.0
    learning_interval_seconds: float = 300.0


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``governor.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> GovernorConfig:
    """Load a Signal Governor config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``GovernorConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return GovernorConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> GovernorConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        )

    for key in _MAPPING_KEYS:
        if data.get(key) is not None and not isinstance(data[key], dict):
            raise ConfigError(f"'{key}' must be a mapping: {config_path}")
    for key in _LIST_KEYS:
        if data.get(key) is not None and not isinstance(data[key], list):
            raise ConfigError(f"'{key}' must be a list: {config_path}")

    base = config_path.parent
    resolved: dict[str, str | None] = {}
    for key in _PATH_KEYS:
        val = data.get(key)
        resolved[key] = str((base / val).resolve()) if val is not None else None

    try:
        return GovernorConfig(
            config_path=config_path,
            catalog=resolved["catalog"],
            store=resolved["store"],
            safety=data.get("safety"),
            learning=data.get("learning"),
            throttles=data.get("throttles"),
            channels=data.get("channels") or [],
            escalation=data.get("escalation"),
            delivery_timeout_seconds=float(data.get("delivery_timeout_seconds", 10.0)),
            decision_interval_seconds=float(data.get("decision_interval_seconds", 30.0)),
            learning_interval_seconds=float(data.get("learning_interval_seconds", 300.0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {config_path}: {e}") from e

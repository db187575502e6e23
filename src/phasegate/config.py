"""Configuration loading for the engine and the CLI."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

from phasegate.domain.exceptions import ConfigurationError, PlanningFailure
from phasegate.domain.planning import PatternTable
from phasegate.schemas import validate_config, validate_patterns


@dataclass(frozen=True)
class EngineConfig:
    """Engine settings. Every field has a working default."""

    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    max_workers: int = 4
    confidence_threshold: float = 0.6
    task_timeout_seconds: float | None = None
    state_dir: str | None = None  # None: in-memory stores
    patterns_file: str | None = None
    default_worker: str | None = None
    workers: dict[str, dict[str, Any]] = field(default_factory=dict)
    output_schemas: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineConfig:
        return cls(**data)


def _read_json(path: Path, what: str) -> Any:
    if not path.exists():
        raise ConfigurationError(f"{what} not found: {path}")
    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e


def _schema_error(path: Path, error: jsonschema.ValidationError) -> ConfigurationError:
    location = "/".join(str(p) for p in error.absolute_path) or "<root>"
    return ConfigurationError(f"{path}: {location}: {error.message}")


def load_config(path: Path) -> EngineConfig:
    """
    Load engine configuration from a JSON file.

    Relative state_dir and patterns_file paths are resolved against the
    directory holding the configuration file.

    Args:
        path: Path to the configuration file

    Returns:
        Validated EngineConfig

    Raises:
        ConfigurationError: If the file is missing, not JSON, or violates
            the configuration schema
    """
    data = _read_json(path, "Configuration file")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected dict in {path}, got {type(data).__name__}")

    try:
        validate_config(data)
    except jsonschema.ValidationError as e:
        raise _schema_error(path, e) from e

    for key in ("state_dir", "patterns_file"):
        if data.get(key):
            data[key] = str((path.parent / data[key]).resolve())

    return EngineConfig.from_dict(data)


def load_patterns(path: Path) -> PatternTable:
    """
    Load a pattern table override.

    Raises:
        ConfigurationError: If the file is missing, not JSON, violates the
            patterns schema, or names an unknown skeleton
    """
    data = _read_json(path, "Patterns file")
    try:
        validate_patterns(data)
    except jsonschema.ValidationError as e:
        raise _schema_error(path, e) from e

    try:
        return PatternTable.from_dict(data)
    except (PlanningFailure, ValueError, KeyError) as e:
        raise ConfigurationError(f"{path}: {e}") from e

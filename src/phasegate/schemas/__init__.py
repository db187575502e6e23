"""phasegate JSON Schema definitions and validation utilities.

Schemas:
    - config.schema.json: Engine configuration (retry policy, workers, storage)
    - patterns.schema.json: Pattern table and skeleton overrides

Usage:
    from phasegate.schemas import validate_config

    with open("phasegate.json") as f:
        data = json.load(f)
    validate_config(data)  # Raises jsonschema.ValidationError if invalid
"""

from __future__ import annotations

import json
from importlib.resources import files
from typing import Any

import jsonschema


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'config.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("phasegate.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_config_schema() -> dict[str, Any]:
    """Get the engine configuration schema."""
    return _load_schema("config.schema.json")


def get_patterns_schema() -> dict[str, Any]:
    """Get the pattern table schema."""
    return _load_schema("patterns.schema.json")


def validate_config(data: dict[str, Any]) -> None:
    """Validate an engine configuration against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_config_schema())


def validate_patterns(data: dict[str, Any]) -> None:
    """Validate a pattern table document against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_patterns_schema())


__all__ = [
    "get_config_schema",
    "get_patterns_schema",
    "validate_config",
    "validate_patterns",
]

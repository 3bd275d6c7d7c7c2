"""Effectflow JSON Schema definitions and validation utilities.

Schemas:
    - effect.schema.json: One record of a run's effect log
    - run.schema.json: Run metadata record
    - config.schema.json: Runtime configuration file

Usage:
    from effectflow.schemas import validate_effect

    validate_effect(effect.to_record())  # Raises jsonschema.ValidationError
"""

from __future__ import annotations

import json
from functools import cache
from importlib.resources import files
from typing import Any

import jsonschema


@cache
def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'effect.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("effectflow.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_effect_schema() -> dict[str, Any]:
    """JSON Schema for effect records."""
    return _load_schema("effect.schema.json")


def get_run_schema() -> dict[str, Any]:
    """JSON Schema for run records."""
    return _load_schema("run.schema.json")


def get_config_schema() -> dict[str, Any]:
    """JSON Schema for the runtime configuration file."""
    return _load_schema("config.schema.json")


def validate_effect(data: dict[str, Any]) -> None:
    """Validate an effect record against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_effect_schema())


def validate_run(data: dict[str, Any]) -> None:
    """Validate a run record against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_run_schema())


def validate_config(data: dict[str, Any]) -> None:
    """Validate a configuration mapping against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_config_schema())


__all__ = [
    "get_effect_schema",
    "get_run_schema",
    "get_config_schema",
    "validate_effect",
    "validate_run",
    "validate_config",
]

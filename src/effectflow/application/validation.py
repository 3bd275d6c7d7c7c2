"""JSON Schema gates at the task boundary."""

from __future__ import annotations

from typing import Any

from jsonschema.validators import validator_for

from effectflow.domain.effect_ids import normalize
from effectflow.domain.exceptions import InputValidationError


def schema_errors(instance: Any, schema: dict[str, Any]) -> list[str]:
    """Validate an instance and return one message per violation.

    Args:
        instance: JSON value to check
        schema: JSON Schema document (draft picked from ``$schema``)

    Returns:
        Messages prefixed with the JSON path of the offending value,
        empty when the instance is valid
    """
    validator = validator_for(schema)(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.path))
    return [
        f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in errors
    ]


def validate_arguments(args: Any, schema: dict[str, Any] | None = None) -> Any:
    """Normalize call-site arguments and check them against an input contract.

    Returns:
        The arguments as they will be stored

    Raises:
        InputValidationError: If the arguments are not serializable or
            violate the schema
    """
    try:
        normalized = normalize(args)
    except (TypeError, ValueError) as e:
        raise InputValidationError(f"Arguments are not JSON-serializable: {e}") from e

    if schema is not None:
        errors = schema_errors(normalized, schema)
        if errors:
            raise InputValidationError(
                f"Arguments violate the input schema: {errors[0]}", errors
            )
    return normalized

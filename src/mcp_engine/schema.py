"""JSON-schema validation for tool and prompt parameters."""

import json
import logging
from collections.abc import Mapping
from typing import Any

from jsonschema import SchemaError, validators

logger = logging.getLogger(__name__)


def load_schema(schema: str | Mapping[str, Any]) -> dict[str, Any]:
    """Return `schema` as a dict, decoding it first if it is JSON text.

    Raises:
        ValueError: If the text is not a JSON object
    """
    if isinstance(schema, str):
        decoded = json.loads(schema)
        if not isinstance(decoded, dict):
            raise ValueError("Schema must be a JSON object")
        return decoded
    return dict(schema)


def validate(data: Mapping[str, Any], schema: str | Mapping[str, Any]) -> bool:
    """Check `data` against a JSON schema."""
    return not validate_with_errors(data, schema)


def validate_with_errors(
    data: Mapping[str, Any], schema: str | Mapping[str, Any]
) -> list[dict[str, Any]]:
    """Validate `data` against a JSON schema and list what is wrong with it.

    Args:
        data: The value to check
        schema: The schema, as a mapping or as JSON text

    Returns:
        list[dict[str, Any]]: One entry per violation with the keys
            `property` (dotted path, empty for the root), `message` and
            `constraint` (the failing schema keyword). Empty if valid.
    """
    try:
        schema = load_schema(schema)
    except ValueError as e:
        return [{"message": f"Invalid schema JSON: {e}"}]

    validator_cls = validators.validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as e:
        logger.warning("Invalid JSON schema", extra={"schema": schema})
        return [{"message": f"Invalid schema: {e.message}"}]

    errors = []
    found = validator_cls(schema).iter_errors(data)
    for error in sorted(found, key=lambda e: e.message):
        errors.append(
            {
                "property": ".".join(str(part) for part in error.absolute_path),
                "message": error.message,
                "constraint": error.validator,
            }
        )
    return errors

"""JSON Schema validation utilities."""

from typing import Any

from jsonschema import Draft7Validator


# Map of server name to a free-form definition record
SERVER_DEFINITIONS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": {"type": "object"},
}

MANIFEST_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "pluginKey": {"type": "string"},
            "authConfig": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"authField": {"type": "string"}},
                    "required": ["authField"],
                },
            },
        },
        "required": ["name", "pluginKey"],
    },
}


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not schema:
        return True, []

    validator = Draft7Validator(schema)
    errors = list(validator.iter_errors(data))

    if not errors:
        return True, []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    return False, error_messages

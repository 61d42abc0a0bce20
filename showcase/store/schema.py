"""JSON Schema for the persisted games document."""

from typing import Any

from jsonschema import Draft7Validator

# A JSON array of game objects
DOCUMENT_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "title", "description", "link"],
        "properties": {
            "id": {"type": ["string", "integer"]},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "link": {"type": "string"},
            "image": {"type": ["string", "null"]},
            "createdAt": {"type": ["string", "null"]},
            "updatedAt": {"type": ["string", "null"]},
        },
    },
}

_validator = Draft7Validator(DOCUMENT_SCHEMA)


def validate_document(data: Any) -> str | None:
    """Validate a decoded games document.

    Returns:
        None if the document is valid, otherwise a description of the
        first problem found.
    """
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(map(str, e.path)))
    if not errors:
        return None
    error = errors[0]
    location = "/".join(str(p) for p in error.path) or "(root)"
    return f"{location}: {error.message}"

"""Decoding of submitted game fields from form or JSON bodies."""

import base64
import json
import mimetypes
from typing import Any

from fastapi import Request
from starlette.datastructures import UploadFile

from ..errors import ValidationFailed

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def to_data_uri(data: bytes, content_type: str) -> str:
    """Encode raw bytes as a data URI."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


async def read_fields(request: Request) -> dict[str, Any]:
    """Read the request body as a flat mapping of field name to value.

    Form bodies keep uploaded files as UploadFile values; JSON bodies must
    be an object. An empty body reads as no fields.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {key: form.get(key) for key in form.keys()}

    body = await request.body()
    if not body.strip():
        return {}
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValidationFailed(f"Invalid JSON body: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def text_field(fields: dict[str, Any], name: str) -> str | None:
    """Get a text field, ignoring non-text values."""
    value = fields.get(name)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value if isinstance(value, str) else None


async def resolve_image(value: Any, max_bytes: int) -> str | None:
    """Turn a submitted image into the stored form.

    Args:
        value: An uploaded file, an image URL / data URI string, or None.
        max_bytes: Largest accepted upload.

    Returns:
        A data URI for uploads, the trimmed string for URLs, or None when
        no image was given.

    Raises:
        ValidationFailed: The upload is too large or not an image.
    """
    if isinstance(value, UploadFile):
        data = await value.read(max_bytes + 1)
        if not data:
            return None
        if len(data) > max_bytes:
            raise ValidationFailed(f"Image exceeds {max_bytes} bytes")

        content_type = value.content_type
        if not content_type or content_type == "application/octet-stream":
            content_type = mimetypes.guess_type(value.filename or "")[0]
        if not content_type or not content_type.startswith("image/"):
            raise ValidationFailed("Uploaded file is not an image")
        return to_data_uri(data, content_type)

    if isinstance(value, str):
        return value.strip() or None

    return None

"""Decide whether a provider response body is JSON or text."""

import json
from typing import Optional

from dynprov.models.data_models import ClassifiedResponse, ResponseType


def classify_body(body: str, content_type: Optional[str] = None) -> ClassifiedResponse:
    """
    Classify a response body.

    A JSON content type is parsed as JSON. Anything else is read as text and
    opportunistically parsed; only an object or array result is treated as
    JSON, so mislabelled JSON still lands on the JSON path while plain
    ``ACCESS_BALANCE:12.5`` or a bare ``42`` stays text.
    """
    if content_type and "json" in content_type.lower():
        try:
            return ClassifiedResponse(ResponseType.JSON, json.loads(body))
        except ValueError:
            return ClassifiedResponse(ResponseType.TEXT, body)

    stripped = body.strip()
    if stripped[:1] in ("{", "["):
        try:
            parsed = json.loads(stripped)
        except ValueError:
            parsed = None
        if isinstance(parsed, (dict, list)):
            return ClassifiedResponse(ResponseType.JSON, parsed)

    return ClassifiedResponse(ResponseType.TEXT, body)


def classify_response(response) -> ClassifiedResponse:
    """Classify an ``httpx.Response``."""
    return classify_body(response.text, response.headers.get("content-type"))

"""Detect vendor business errors hidden inside otherwise successful responses."""

import re
from typing import Any, Dict, Optional

from dynprov.exceptions import ProviderError, UniversalErrorType
from dynprov.models.config import MappingDefinition, ProviderConfig


MAX_CHECK_LENGTH = 500

_HEURISTIC_KEYS = ("error", "message", "status")


def _as_text(value: Any) -> str:
    if value is None or value is False:
        return ""
    if value is True:
        return "true"
    if isinstance(value, (str, int, float)):
        return str(value)
    return ""


def extract_check_value(data: Any, error_field: Optional[str] = None) -> str:
    """Pick the piece of a response that may carry a vendor error message.

    An explicit ``error_field`` wins for JSON objects. Text bodies are checked
    whole. Otherwise the first truthy ``error``, ``message`` or ``status`` key
    of a JSON object is used.
    """
    if error_field and isinstance(data, dict):
        return _as_text(data.get(error_field)).strip()
    if isinstance(data, str):
        return data.strip()
    if isinstance(data, dict):
        for key in _HEURISTIC_KEYS:
            text = _as_text(data.get(key))
            if text:
                return text.strip()
        return ""
    if isinstance(data, list):
        return ""
    return _as_text(data).strip()


def matches_error_pattern(text: str, pattern: str) -> bool:
    """``/regex/`` patterns match case-insensitively; others are substring matches."""
    if len(pattern) >= 2 and pattern.startswith("/") and pattern.endswith("/"):
        try:
            return re.search(pattern[1:-1], text, re.IGNORECASE) is not None
        except re.error:
            return False
    return pattern.lower() in text.lower()


def _first_match(text: str, patterns: Dict[UniversalErrorType, str]) -> Optional[UniversalErrorType]:
    for error_type, pattern in patterns.items():
        if pattern and matches_error_pattern(text, pattern):
            return error_type
    return None


def check_for_errors(
    data: Any,
    config: ProviderConfig,
    mapping: Optional[MappingDefinition] = None,
) -> None:
    """
    Raise ``ProviderError`` when the response matches a configured error pattern.

    Mapping-level patterns are checked before provider-level ones. Empty
    values and values longer than ``MAX_CHECK_LENGTH`` characters are never
    treated as errors.

    Args:
        data: Classified response body (parsed JSON or text)
        config: Provider configuration holding global patterns
        mapping: Operation mapping holding local patterns, if any

    Raises:
        ProviderError: If a pattern matches
    """
    error_field = (mapping.error_field if mapping else None) or config.error_field
    text = extract_check_value(data, error_field)
    if not text or len(text) > MAX_CHECK_LENGTH:
        return

    for patterns in ((mapping.error_patterns if mapping else {}), config.error_patterns):
        error_type = _first_match(text, patterns)
        if error_type is not None:
            raise ProviderError(error_type, f"Provider returned: {text}", raw_response=text)

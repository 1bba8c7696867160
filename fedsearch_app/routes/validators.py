"""Lightweight request validation helpers."""

import re
from typing import Any, Dict, List, Tuple, Optional

from ..search.items import MODULE_KINDS
from ..search.query_parser import FILTER_TOKENS


Rule = Tuple[str, type, Optional[int]]

# Safe characters for client / user ids (alphanumeric, dash, underscore, dot, @)
CLIENT_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_.@-]{1,128}$')

MAX_QUERY_LENGTH = 500
MAX_LOCAL_RECORDS = 5000
MAX_FILTER_VALUE = 200


def validate_fields(payload: Dict[str, Any], rules: List[Rule]) -> Optional[str]:
    """
    Validate required fields with optional max length.

    Args:
        payload: Incoming JSON dict.
        rules: List of (field, type, max_length or None).

    Returns:
        None if valid, or error message string.
    """
    for field, expected_type, max_len in rules:
        if field not in payload:
            return f"Missing required field: {field}"
        value = payload.get(field)
        if not isinstance(value, expected_type):
            return f"Field '{field}' must be {expected_type.__name__}"
        if max_len is not None and len(str(value)) > max_len:
            return f"Field '{field}' exceeds max length {max_len}"
    return None


def validate_client_id(value: Any, field: str = 'session_id') -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        return f"Field '{field}' must be a string"
    if not CLIENT_ID_PATTERN.match(str(value)):
        return f"Invalid {field} format"
    return None


def validate_records(value: Any, field: str) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """A list of JSON objects (local chats / users)."""
    if value is None:
        return [], None
    if not isinstance(value, list):
        return [], f"Field '{field}' must be list"
    if len(value) > MAX_LOCAL_RECORDS:
        return [], f"Field '{field}' exceeds max size {MAX_LOCAL_RECORDS}"
    if not all(isinstance(item, dict) for item in value):
        return [], f"Field '{field}' must contain objects"
    return value, None


def validate_modules(value: Any) -> Tuple[Optional[List[str]], Optional[str]]:
    """Optional list of module tags; unknown tags are rejected."""
    if value is None:
        return None, None
    if not isinstance(value, list) or not all(isinstance(m, str) for m in value):
        return None, "Field 'modules' must be a list of strings"
    unknown = [m for m in value if m not in MODULE_KINDS]
    if unknown:
        return None, f"Unknown modules: {', '.join(unknown)}"
    return value, None


def validate_filters(value: Any) -> Tuple[Dict[str, str], Optional[str]]:
    """Optional {key: value} filters restricted to the token vocabulary."""
    if value is None:
        return {}, None
    if not isinstance(value, dict):
        return {}, "Field 'filters' must be object"
    filters = {}
    for key, raw in value.items():
        key = str(key).lower()
        if key not in FILTER_TOKENS:
            return {}, f"Unknown filter: {key}"
        if not isinstance(raw, str):
            return {}, f"Filter '{key}' must be string"
        filters[key] = sanitize_string(raw, MAX_FILTER_VALUE).strip()
    return filters, None


def sanitize_string(value: str, max_length: int = 500, allow_newlines: bool = False) -> str:
    """
    Sanitize a string by removing control characters and limiting length.

    Args:
        value: String to sanitize
        max_length: Maximum allowed length
        allow_newlines: Whether to allow newlines

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return ""

    # Remove control characters (except newlines if allowed)
    if allow_newlines:
        result = ''.join(c for c in value if c >= ' ' or c in '\n\r\t')
    else:
        result = ''.join(c for c in value if c >= ' ')

    # Limit length
    return result[:max_length]

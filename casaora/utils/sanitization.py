import html
from typing import Optional

import bleach


def sanitize_text(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """
    Strip all HTML from user-supplied text (reviews, messages, notes).

    The result is plain text with entities decoded, so `&` stays `&` and must be
    escaped wherever it is rendered as HTML. Returns None if input is None.
    Raises ValueError when the cleaned text is longer than max_length.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)

    cleaned = html.unescape(bleach.clean(value, tags=[], attributes={}, strip=True)).strip()

    if max_length is not None and len(cleaned) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    return cleaned


def sanitize_dict(data: dict, fields: Optional[list[str]] = None) -> dict:
    """
    Sanitize string values in a dictionary.
    If fields is None, sanitizes all string values (nested dicts included).
    """
    if not data:
        return data

    sanitized = {}
    for key, value in data.items():
        if fields is None or key in fields:
            if isinstance(value, str):
                sanitized[key] = sanitize_text(value)
            elif isinstance(value, dict):
                sanitized[key] = sanitize_dict(value, fields)
            else:
                sanitized[key] = value
        else:
            sanitized[key] = value

    return sanitized

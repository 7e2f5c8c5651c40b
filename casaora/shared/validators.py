"""Shared validation utilities"""

import re
from datetime import date, datetime, timezone
from typing import Optional, Union

# Country calling codes for the markets we operate in
COUNTRY_CALLING_CODES = {"CO": "57", "PY": "595", "UY": "598", "AR": "54"}


def normalize_phone(phone: Optional[str], country: str = "CO") -> Optional[str]:
    """
    Normalize a phone number to E.164 for duplicate detection.

    Numbers without a country prefix get the calling code of `country`.

    Raises:
        ValueError: If the number has too few digits
    """
    if not phone:
        return phone

    has_plus = phone.strip().startswith("+")
    digits = re.sub(r"\D", "", phone)

    if len(digits) < 7:
        raise ValueError("Phone number is too short")

    if has_plus:
        return f"+{digits}"

    calling_code = COUNTRY_CALLING_CODES.get(country.upper(), "")
    if calling_code and digits.startswith(calling_code) and len(digits) > 10:
        return f"+{digits}"
    return f"+{calling_code}{digits}"


def validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> bool:
    """True when both coordinates are present and in range"""
    if latitude is None or longitude is None:
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse a datetime, ISO string or YYYY-MM-DD string into a naive UTC datetime.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

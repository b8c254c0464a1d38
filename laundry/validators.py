"""
Validation utilities for request payloads
"""
import re
import uuid
from datetime import date


def validate_email(email):
    """
    Validate email format

    Args:
        email (str): Email address to validate

    Returns:
        bool: True if valid, False otherwise
    """
    if not email or not isinstance(email, str):
        return False

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_phone(phone):
    """
    Validate phone number format (US/Canada)

    Args:
        phone (str): Phone number to validate

    Returns:
        bool: True if valid, False otherwise
    """
    if not phone or not isinstance(phone, str):
        return False

    # Remove common separators
    cleaned = re.sub(r'[\s\-\(\)\.]', '', phone)

    # 10 or 11 digits (with optional +1)
    pattern = r'^(\+?1)?[2-9]\d{9}$'
    return bool(re.match(pattern, cleaned))


def validate_postal_code(postal_code):
    """US ZIP: 12345 or 12345-6789"""
    if not postal_code or not isinstance(postal_code, str):
        return False
    return bool(re.match(r'^\d{5}(-\d{4})?$', postal_code.strip()))


def validate_uuid(uuid_string):
    try:
        uuid.UUID(uuid_string)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def parse_iso_date(value):
    """Parse ``YYYY-MM-DD`` (a trailing time part is ignored). Returns None if invalid."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def is_cents(value, allow_zero=True):
    """True for a non-negative int (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value >= 0 if allow_zero else value > 0

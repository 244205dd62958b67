"""
Input validation helper functions.
Provides validation for common input types.
"""

import re
from datetime import date, datetime

USERNAME_PATTERN = re.compile(r'^[a-z0-9_]{3,20}$')


def validate_username(username: str) -> bool:
    """
    Validate username format: 3 to 20 lowercase letters, digits or underscores.

    Args:
        username: Username to validate

    Returns:
        True if valid username
    """
    if not isinstance(username, str):
        return False
    return bool(USERNAME_PATTERN.fullmatch(username))


def validate_email(email: str) -> bool:
    """
    Validate email format.

    Args:
        email: Email address to validate

    Returns:
        True if valid email format
    """
    if not email:
        return False

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_phone(phone: str) -> bool:
    """
    Validate French phone number format.
    Accepts: +33 X XX XX XX XX, 0X XX XX XX XX, international +XXXXXXXX

    Args:
        phone: Phone number to validate

    Returns:
        True if valid phone format
    """
    if not phone:
        return False

    # Remove spaces and common separators
    cleaned = re.sub(r'[\s\-\.\(\)]', '', phone)

    patterns = [
        r'^\+33[1-9][0-9]{8}$',  # +33XXXXXXXXX
        r'^0[1-9][0-9]{8}$',     # 0XXXXXXXXX
        r'^\+[0-9]{8,15}$'       # Other international numbers
    ]

    return any(bool(re.match(pattern, cleaned)) for pattern in patterns)


def parse_date(value) -> date:
    """
    Parse a YYYY-MM-DD string (or pass a date through).

    Args:
        value: Date string, date or datetime

    Returns:
        date

    Raises:
        ValueError: if the string is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()


def validate_date_range(start_date, end_date) -> bool:
    """
    Validate that end date is not before start date.

    Args:
        start_date: Start date (YYYY-MM-DD or date)
        end_date: End date (YYYY-MM-DD or date)

    Returns:
        True if valid date range
    """
    try:
        return parse_date(end_date) >= parse_date(start_date)
    except (TypeError, ValueError):
        return False


def sanitize_input(text: str, max_length: int = None) -> str:
    """
    Sanitize text input by trimming and limiting length.

    Args:
        text: Text to sanitize
        max_length: Maximum length (optional)

    Returns:
        Sanitized text
    """
    if not text:
        return ''

    # Strip whitespace
    sanitized = text.strip()

    # Limit length if specified
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized

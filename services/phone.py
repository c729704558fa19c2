"""Phone number validation and formatting utilities."""

import re
from typing import Optional

TOLL_FREE_AREA_CODES = {"800", "833", "844", "855", "866", "877", "888"}

_NON_DIGITS = re.compile(r"\D")


def validate_and_format_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Args:
        phone: Phone number in any common format

    Returns:
        The E.164 number, or None if it can't be a valid number
    """
    if not phone:
        return None

    digits = _NON_DIGITS.sub("", phone)

    if len(digits) < 10 or len(digits) > 15:
        return None

    # US/Canada without country code
    if len(digits) == 10:
        return f"+1{digits}"

    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"

    if len(digits) > 11:
        return f"+{digits}"

    return None


def is_toll_free(phone: Optional[str]) -> bool:
    formatted = validate_and_format_phone(phone)
    if not formatted or not formatted.startswith("+1") or len(formatted) != 12:
        return False
    return formatted[2:5] in TOLL_FREE_AREA_CODES


def format_for_display(phone: Optional[str]) -> str:
    """Format a US number as (XXX) XXX-XXXX, leaving anything else as given."""
    if not phone:
        return ""
    formatted = validate_and_format_phone(phone)
    if formatted and formatted.startswith("+1") and len(formatted) == 12:
        digits = formatted[2:]
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone

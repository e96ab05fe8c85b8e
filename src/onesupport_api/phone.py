"""
Phone number helpers for matching callers to cases.
"""

import re

DEFAULT_COUNTRY_CODE = "+64"
COUNTRY_CODES = ("+64", "+61", "+1", "+86", "+44", "+81")

_NON_DIGITS = re.compile(r"[^\d+]")


def clean_phone_number(phone_number: str) -> str:
    """Remove any character other than digits and '+'."""
    return _NON_DIGITS.sub("", phone_number or "")


def parse_phone_number(phone_number: str) -> tuple[str, str]:
    """
    Split a phone number into country code and local number.

    Args:
        phone_number: Full number, e.g. "+64273873920" or "0273873920"

    Returns:
        (contact_code, contact_number); numbers without a known country
        code are treated as New Zealand local numbers
    """
    clean = clean_phone_number(phone_number)
    if not clean:
        return DEFAULT_COUNTRY_CODE, ""

    if clean.startswith("+"):
        for code in COUNTRY_CODES:
            if clean.startswith(code):
                local = clean[len(code):]
                if code == "+64" and local.startswith("0"):
                    local = local[1:]
                return code, local

    return DEFAULT_COUNTRY_CODE, clean


def format_phone_number(contact_code: str, contact_number: str) -> str:
    if not contact_number:
        return ""
    return f"{contact_code}{contact_number}"


def validate_phone_number(phone_number: str) -> bool:
    clean = clean_phone_number(phone_number)
    if not clean:
        return False
    if clean.startswith("+"):
        return len(clean) >= 8
    return len(clean) >= 7

import re
from typing import Optional

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_check_number(value: Optional[str]) -> Optional[str]:
    """
    Canonical form of a check/document reference.

    Keeps digits only and strips leading zeros, so "0001-A", "#1" and "1"
    compare equal. Returns None when no significant digit remains.
    """
    if not value:
        return None
    digits = _NON_DIGITS.sub("", str(value)).lstrip("0")
    return digits or None


def check_numbers_match(left: Optional[str], right: Optional[str]) -> bool:
    """True when both references normalize to the same non-empty key."""
    key = normalize_check_number(left)
    return key is not None and key == normalize_check_number(right)

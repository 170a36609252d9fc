"""
Pure predicates run before any mutation. Callers decide which error
and message a failing check turns into.
"""
import re
from typing import Any, Optional

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")


def check_range(value: Optional[str], min_len: int, max_len: int) -> bool:
    if value is None:
        return False
    return int(min_len) <= len(value) <= int(max_len)


def check_email(value: Optional[str]) -> bool:
    if not value:
        return False
    return EMAIL_RE.fullmatch(value) is not None


def check_password(value: Optional[str], min_len: int = 8, max_len: int = 50) -> bool:
    """Length within bounds plus lower, upper, digit and special character."""
    if not check_range(value, min_len, max_len):
        return False
    return (
        any(c.islower() for c in value)
        and any(c.isupper() for c in value)
        and any(c.isdigit() for c in value)
        and any(not c.isalnum() for c in value)
    )


def check_unique(existing: Any, **candidates: Any) -> bool:
    """True when any candidate collides (exact match) with the same field of `existing`."""
    for field, value in candidates.items():
        if value is not None and getattr(existing, field, None) == value:
            return True
    return False

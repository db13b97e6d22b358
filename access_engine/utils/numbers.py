"""Lenient numeric parsing for fields read from stored records."""

from typing import Any, Optional


def safe_int(value: Any, fallback: Optional[int] = None) -> Optional[int]:
    """Integer value of value, or fallback when it is not a finite number."""
    if value is None or value == "" or isinstance(value, bool):
        return fallback
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return fallback

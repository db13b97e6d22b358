"""
Timestamp helpers.

Records reach the engine from SQLAlchemy (possibly naive datetimes on
SQLite) or as ISO-8601 strings from API payloads. Everything is normalized
to timezone-aware UTC before comparison.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Any) -> Optional[datetime]:
    """
    Coerce a datetime, date or ISO-8601 string to an aware UTC datetime.

    - None / empty string → None
    - naive datetime → assumed UTC
    - unparseable input → None (logged)
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning("Unparseable timestamp", extra={"value": value})
            return None

    logger.warning("Unsupported timestamp type", extra={"type": type(value).__name__})
    return None

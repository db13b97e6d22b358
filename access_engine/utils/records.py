"""
Field access on raw records.

Records reach the engine as plain dicts (ScopedStore) or as ORM rows.
"""

from typing import Any, Mapping


def get_field(record: Any, name: str, default: Any = None) -> Any:
    """Read a field from a dict or an object. None records yield default."""
    if record is None:
        return default
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)

"""
Access resolution: drip scheduling, the resolver, material sanitizing,
license gate and the lesson access service.
"""

from access_engine.access.resolver import (
    AccessContext,
    AccessDecision,
    ContentKind,
    resolve_access,
    resolve_access_decision,
)
from access_engine.access.materials import sanitize_material_for_access
from access_engine.access.licenses import resolve_license

__all__ = [
    "AccessContext",
    "AccessDecision",
    "ContentKind",
    "resolve_access",
    "resolve_access_decision",
    "sanitize_material_for_access",
    "resolve_license",
]

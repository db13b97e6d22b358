"""
Content protection policy.

One ContentProtectionPolicy per school. When a school has none, the
configured default policy applies (config/access_engine.yml, default_policy).
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from access_engine.config.settings import get_engine_settings
from access_engine.entitlements.models import LicenseMode
from access_engine.errors import require
from access_engine.utils.numbers import safe_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentPolicy:
    """Canonical, immutable content protection policy."""
    protect_content: bool = True
    require_payment_for_materials: bool = True
    allow_previews: bool = True
    max_preview_seconds: int = 90
    max_preview_chars: int = 1500
    watermark_enabled: bool = True
    block_copy: bool = True
    block_print: bool = True
    copy_mode: LicenseMode = LicenseMode.DISALLOW
    download_mode: LicenseMode = LicenseMode.DISALLOW

    @classmethod
    def default(cls) -> "ContentPolicy":
        return cls.from_record(get_engine_settings().default_policy, use_defaults=False)

    @classmethod
    def from_record(cls, record: Any, use_defaults: bool = True) -> "ContentPolicy":
        """
        Build a policy from a stored record (dict or ORM row).

        Missing, empty or unreadable fields take the configured default; modes
        that are not recognised become DISALLOW.
        """
        if isinstance(record, ContentPolicy):
            return record

        base = cls.default() if use_defaults else cls()
        values = {}
        for f in fields(cls):
            if isinstance(record, Mapping):
                raw = record.get(f.name)
            else:
                raw = getattr(record, f.name, None)
            if raw is None or raw == "":
                values[f.name] = getattr(base, f.name)
            elif f.name.endswith("_mode"):
                values[f.name] = LicenseMode.parse(raw)
            elif f.name.startswith("max_"):
                # 0 or unreadable means "not configured", same as missing
                values[f.name] = safe_int(raw) or getattr(base, f.name)
            else:
                values[f.name] = bool(raw)
        return cls(**values)


async def load_content_policy(store, school_id: str) -> ContentPolicy:
    """
    Fetch the school's policy, falling back to the default.

    Store errors propagate: a failed fetch is not "no policy".
    """
    require(school_id, "school_id")
    records = await store.filter("ContentProtectionPolicy", school_id, {}, limit=1)
    if not records:
        logger.debug("No content policy for school, using default", extra={"school_id": school_id})
        return ContentPolicy.default()
    return ContentPolicy.from_record(records[0])

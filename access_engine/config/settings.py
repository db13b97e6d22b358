"""
Access engine configuration loader.

Loads engine defaults from config/access_engine.yml:
  - default content protection policy (used when a school has none)
  - quiz defaults (preview question count, passing score, fetch ceiling,
    normalized QuizQuestion storage)
  - drip behavior when a user's enrollment date is unknown
  - global admin e-mails

Environment overrides:
  - ACCESS_ENGINE_CONFIG: explicit path to the YAML file
  - GLOBAL_ADMINS: comma separated e-mails, replaces the YAML list

Usage:
    from access_engine.config.settings import get_engine_settings

    settings = get_engine_settings()
    settings.default_preview_questions  # 2
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DRIP_UNKNOWN_ENROLLMENT_BASE_ACCESS = "base_access"
DRIP_UNKNOWN_ENROLLMENT_LOCK = "lock"

_FALLBACK_POLICY: Dict[str, Any] = {
    "protect_content": True,
    "require_payment_for_materials": True,
    "allow_previews": True,
    "max_preview_seconds": 90,
    "max_preview_chars": 1500,
    "watermark_enabled": True,
    "block_copy": True,
    "block_print": True,
    "copy_mode": "DISALLOW",
    "download_mode": "DISALLOW",
}


@dataclass(frozen=True)
class EngineSettings:
    """Resolved engine configuration. Immutable, safe to share."""

    default_policy: Dict[str, Any] = field(default_factory=lambda: dict(_FALLBACK_POLICY))
    default_preview_questions: int = 2
    default_passing_score: int = 70
    question_fetch_limit: int = 1000
    normalized_questions: bool = True
    drip_unknown_enrollment: str = DRIP_UNKNOWN_ENROLLMENT_BASE_ACCESS
    global_admins: List[str] = field(default_factory=list)


class EngineSettingsLoader:
    """
    Thread-safe singleton loader for config/access_engine.yml.

    Falls back to hardcoded defaults when the file is absent.
    """

    _instance: Optional["EngineSettingsLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._settings = EngineSettings()
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        explicit = self._config_path or os.getenv("ACCESS_ENGINE_CONFIG")
        if explicit:
            return Path(explicit)

        candidates = [
            Path(__file__).parent.parent.parent / "config" / "access_engine.yml",
            Path(os.getcwd()) / "config" / "access_engine.yml",
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"access_engine.yml not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            raw: Dict[str, Any] = {}
            try:
                path = self._resolve_path()
                logger.info("Loading access engine config from %s", path)
                with open(path, "r") as f:
                    raw = yaml.safe_load(f) or {}
            except FileNotFoundError:
                logger.warning("access_engine.yml not found, using fallback defaults")

            self._settings = self._build(raw)

    @staticmethod
    def _build(raw: Dict[str, Any]) -> EngineSettings:
        policy = dict(_FALLBACK_POLICY)
        policy.update(raw.get("default_policy") or {})

        quizzes = raw.get("quizzes") or {}
        drip = raw.get("drip") or {}

        unknown_enrollment = str(
            drip.get("unknown_enrollment", DRIP_UNKNOWN_ENROLLMENT_BASE_ACCESS)
        ).lower()
        if unknown_enrollment not in (
            DRIP_UNKNOWN_ENROLLMENT_BASE_ACCESS,
            DRIP_UNKNOWN_ENROLLMENT_LOCK,
        ):
            logger.warning(
                "Invalid drip.unknown_enrollment, using base_access",
                extra={"value": unknown_enrollment},
            )
            unknown_enrollment = DRIP_UNKNOWN_ENROLLMENT_BASE_ACCESS

        env_admins = os.getenv("GLOBAL_ADMINS")
        if env_admins is not None:
            admins = [e.strip().lower() for e in env_admins.split(",") if e.strip()]
        else:
            admins = [str(e).strip().lower() for e in raw.get("global_admins") or []]

        return EngineSettings(
            default_policy=policy,
            default_preview_questions=int(quizzes.get("default_preview_questions", 2)),
            default_passing_score=int(quizzes.get("default_passing_score", 70)),
            question_fetch_limit=int(quizzes.get("question_fetch_limit", 1000)),
            normalized_questions=bool(quizzes.get("normalized_questions", True)),
            drip_unknown_enrollment=unknown_enrollment,
            global_admins=admins,
        )

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    @property
    def settings(self) -> EngineSettings:
        return self._settings


def get_engine_settings() -> EngineSettings:
    """Return the process-wide engine settings."""
    return EngineSettingsLoader().settings


def reset_engine_settings() -> None:
    """Drop the singleton (tests, config reload)."""
    with EngineSettingsLoader._lock:
        EngineSettingsLoader._instance = None

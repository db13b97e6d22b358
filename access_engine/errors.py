"""
Structured error classes for the access engine.

Not-found conditions are NOT errors: they surface as AccessLevel.NOT_FOUND or
a None result. Errors here are for invalid input and isolation violations;
persistence failures propagate unchanged.
"""

from typing import Optional

from fastapi import status


class AccessEngineError(Exception):
    """Base exception for access engine errors."""

    error_code = "access_engine_error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "error": self.error_code,
            "message": str(self),
        }


class InputValidationError(AccessEngineError, ValueError):
    """
    Raised synchronously when a required input is missing or malformed.

    Never silently defaulted.
    """

    error_code = "invalid_input"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, detail: Optional[str] = None):
        self.field = field
        self.detail = detail or f"Missing {field}"
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "field": self.field,
            "message": self.detail,
        }


class TenantIsolationError(AccessEngineError):
    """Raised when an operation would cross a school boundary."""

    error_code = "tenant_isolation_violation"
    http_status = status.HTTP_403_FORBIDDEN


class UnknownEntityError(AccessEngineError, KeyError):
    """Raised for an entity name or field the persistence layer does not know."""

    error_code = "unknown_entity"
    http_status = status.HTTP_400_BAD_REQUEST

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown entity"


def require(value, field: str) -> None:
    """Fail fast when a required input is missing."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InputValidationError(field)


class ContentUnavailableError(AccessEngineError):
    """
    Raised on write paths (quiz submission) when the caller's access level
    grants nothing for the target.
    """

    error_code = "content_unavailable"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, access_level: str):
        self.access_level = access_level
        if access_level == "NOT_FOUND":
            self.http_status = status.HTTP_404_NOT_FOUND
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": str(self),
            "access_level": self.access_level,
        }

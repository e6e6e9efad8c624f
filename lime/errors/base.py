"""Base error classes and error codes for LIME.

Contains ErrorCode enum, LimeError base class, and ConfigurationError.
All LIME-specific exceptions inherit from LimeError.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standard error codes for LIME errors.

    These codes can be used to programmatically identify error types
    and are shown by the CLI next to the message.
    """

    # Configuration errors (CFG_*)
    CFG_INVALID = "CFG_INVALID"

    # Backup snapshot errors (BKP_*)
    BKP_NOT_INITIALIZED = "BKP_NOT_INITIALIZED"
    BKP_LOAD_FAILED = "BKP_LOAD_FAILED"
    BKP_QUERY_FAILED = "BKP_QUERY_FAILED"

    # Persistent storage errors (STO_*)
    STO_FAILED = "STO_FAILED"

    # Media ingestion errors (MED_*)
    MED_EXTRACT_FAILED = "MED_EXTRACT_FAILED"

    # Export errors (EXPORT_*)
    EXPORT_INVALID_FORMAT = "EXPORT_INVALID_FORMAT"

    # Generic errors
    UNKNOWN = "UNKNOWN"


class LimeError(Exception):
    """Base exception for all LIME errors.

    All LIME-specific exceptions inherit from this class, enabling
    consistent error handling patterns across the codebase.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code from ErrorCode enum.
        details: Optional additional context about the error.
        cause: Optional original exception that caused this error.
    """

    default_message: str = "An error occurred"
    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        self.cause = cause

        super().__init__(self.message)

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        parts = [f"{self.__class__.__name__}({self.message!r}"]
        if self.code != self.default_code:
            parts.append(f", code={self.code.value!r}")
        if self.details:
            parts.append(f", details={self.details!r}")
        if self.cause:
            parts.append(f", cause={self.cause!r}")
        parts.append(")")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a plain dictionary (used for CLI debug output)."""
        result: dict[str, Any] = {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "detail": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# Configuration Errors


class ConfigurationError(LimeError):
    """Raised for configuration and settings issues."""

    default_message = "Configuration error"
    default_code = ErrorCode.CFG_INVALID

    def __init__(
        self,
        message: str | None = None,
        *,
        config_key: str | None = None,
        config_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_path:
            details["config_path"] = config_path
        super().__init__(message, code=code, details=details, cause=cause)

"""Backup, storage, media and export error classes."""

from __future__ import annotations

from typing import Any

from lime.errors.base import ErrorCode, LimeError

# Backup Snapshot Errors


class BackupError(LimeError):
    """Base class for errors reading the backup snapshot."""

    default_message = "Backup database error"
    default_code = ErrorCode.BKP_QUERY_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        db_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if db_path:
            details["db_path"] = db_path
        super().__init__(message, code=code, details=details, cause=cause)


class NotInitializedError(BackupError):
    """Raised when an operation needs a snapshot or media set that is not loaded."""

    default_message = "Database not initialized"
    default_code = ErrorCode.BKP_NOT_INITIALIZED


class LoadFailedError(BackupError):
    """Raised when snapshot or media bytes cannot be opened or parsed."""

    default_message = "Failed to load backup database"
    default_code = ErrorCode.BKP_LOAD_FAILED


class QueryFailedError(BackupError):
    """Raised when a read query against an open snapshot fails."""

    default_message = "Backup query failed"
    default_code = ErrorCode.BKP_QUERY_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        query: str | None = None,
        db_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if query is not None:
            details["query_preview"] = query[:200] + "..." if len(query) > 200 else query
        super().__init__(message, db_path=db_path, code=code, details=details, cause=cause)


# Storage Errors


class StorageFailedError(LimeError):
    """Raised when the persistent tier rejects a read or write."""

    default_message = "Persistent storage operation failed"
    default_code = ErrorCode.STO_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        operation: str | None = None,
        store_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        if store_path:
            details["store_path"] = store_path
        super().__init__(message, code=code, details=details, cause=cause)


# Media Errors


class MediaError(LimeError):
    """Base class for media ingestion errors."""

    default_message = "Media error"
    default_code = ErrorCode.MED_EXTRACT_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        source_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if source_path:
            details["source_path"] = source_path
        super().__init__(message, code=code, details=details, cause=cause)


class ExtractFailedError(MediaError):
    """Raised when a bulk media archive cannot be unpacked."""

    default_message = "Failed to extract ZIP file"
    default_code = ErrorCode.MED_EXTRACT_FAILED


# Export Errors


class ExportError(LimeError):
    """Raised when an export cannot be produced."""

    default_message = "Export failed"
    default_code = ErrorCode.EXPORT_INVALID_FORMAT

"""Convenience factory functions for common error scenarios.

Provides shorthand functions for creating commonly-used error instances
with appropriate error codes and details pre-filled.
"""

from __future__ import annotations

from lime.errors.domain import (
    ExtractFailedError,
    LoadFailedError,
    NotInitializedError,
    StorageFailedError,
)


def backup_not_initialized(what: str = "Database") -> NotInitializedError:
    """Create a NotInitializedError for a snapshot that was never opened."""
    return NotInitializedError(f"{what} not initialized")


def backup_load_failed(
    reason: str, db_path: str | None = None, cause: Exception | None = None
) -> LoadFailedError:
    """Create a LoadFailedError for an unreadable snapshot."""
    return LoadFailedError(
        f"Failed to load backup database: {reason}",
        db_path=db_path,
        cause=cause,
    )


def storage_failed(
    operation: str, store_path: str | None = None, cause: Exception | None = None
) -> StorageFailedError:
    """Create a StorageFailedError for a rejected persistent-tier operation."""
    message = f"Failed to {operation}"
    if cause is not None:
        message = f"{message}: {cause}"
    return StorageFailedError(
        message,
        operation=operation,
        store_path=store_path,
        cause=cause,
    )


def extract_failed(source_path: str, cause: Exception | None = None) -> ExtractFailedError:
    """Create an ExtractFailedError for an archive that could not be unpacked."""
    return ExtractFailedError(
        f"Failed to extract ZIP file: {source_path}",
        source_path=source_path,
        cause=cause,
    )

"""Unified exception hierarchy for LIME.

All LIME-specific exceptions inherit from LimeError, enabling consistent handling
in the CLI and in callers embedding the backup reader.

Exception Hierarchy:
    LimeError (base)
    +-- ConfigurationError - Configuration and settings issues
    +-- BackupError - Backup snapshot access
    |   +-- NotInitializedError - No snapshot/media set loaded
    |   +-- LoadFailedError - Snapshot bytes could not be opened
    |   +-- QueryFailedError - Read query failed
    +-- StorageFailedError - Persistent tier rejected a read/write
    +-- MediaError - Media ingestion issues
    |   +-- ExtractFailedError - Archive could not be unpacked
    +-- ExportError - Export generation failures

Parsing anomalies inside the parameter decoder and attachment resolver never
raise; they degrade to partial or default values.

Usage:
    from lime.errors import LimeError, NotInitializedError

    try:
        chats = reader.get_chats()
    except NotInitializedError as e:
        logger.error("Backup not loaded: %s (code: %s)", e.message, e.code)
"""

# --- base ---
from lime.errors.base import (
    ConfigurationError,
    ErrorCode,
    LimeError,
)

# --- domain errors ---
from lime.errors.domain import (
    BackupError,
    ExportError,
    ExtractFailedError,
    LoadFailedError,
    MediaError,
    NotInitializedError,
    QueryFailedError,
    StorageFailedError,
)

# --- convenience factories ---
from lime.errors.factories import (
    backup_load_failed,
    backup_not_initialized,
    extract_failed,
    storage_failed,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Base exception
    "LimeError",
    # Configuration errors
    "ConfigurationError",
    # Backup errors
    "BackupError",
    "NotInitializedError",
    "LoadFailedError",
    "QueryFailedError",
    # Storage errors
    "StorageFailedError",
    # Media errors
    "MediaError",
    "ExtractFailedError",
    # Export errors
    "ExportError",
    # Convenience functions
    "backup_not_initialized",
    "backup_load_failed",
    "storage_failed",
    "extract_failed",
]

"""Media ingestion from an exported ``chats_backup`` folder or zip archive.

Media files live at ``chats_backup/<chat_id>/messages/<filename>``. Archives
may also hold ``<chat_id>/messages/<filename>`` without the top folder.
Both collectors return ``{media_key: bytes}`` and report progress from 0 to
50; persisting the result covers 50 to 100.
"""

import logging
import re
import zipfile
import zlib
from collections.abc import Callable, Sequence
from pathlib import Path

from lime.errors import extract_failed

from .media import media_key

logger = logging.getLogger(__name__)

BACKUP_DIR_NAME = "chats_backup"
MESSAGES_DIR_NAME = "messages"

# Progress range covered while reading files
READ_PROGRESS_SHARE = 50
FOLDER_PROGRESS_EVERY = 100

_PATH_SPLIT_RE = re.compile(r"[/\\]")

ProgressCallback = Callable[[int], None]


def key_for_backup_path(parts: Sequence[str]) -> str | None:
    """Media key for a path inside ``chats_backup``, or None if it is not one."""
    try:
        backup_index = list(parts).index(BACKUP_DIR_NAME)
    except ValueError:
        return None
    if len(parts) < backup_index + 4:
        return None

    chat_id = parts[backup_index + 1]
    filename = parts[-1]
    if not chat_id or not filename:
        return None
    return media_key(chat_id, filename)


def key_for_archive_path(name: str) -> str | None:
    """Media key for a zip entry name, accepting the bare ``<chat_id>/messages/`` form."""
    parts = _PATH_SPLIT_RE.split(name)
    key = key_for_backup_path(parts)
    if key is not None:
        return key

    if len(parts) >= 3 and parts[1] == MESSAGES_DIR_NAME:
        chat_id, filename = parts[0], parts[-1]
        if chat_id and filename:
            return media_key(chat_id, filename)
    return None


def collect_media_from_folder(
    root: Path, on_progress: ProgressCallback | None = None
) -> dict[str, bytes]:
    """Read every media file under a backup folder.

    Args:
        root: The ``chats_backup`` folder or any folder containing it.
        on_progress: Receives 0-50 while files are read.

    Returns:
        Media key to blob mapping. Empty files are skipped.
    """
    root = Path(root).resolve()
    files = sorted(path for path in root.rglob("*") if path.is_file())
    total = len(files)
    collected: dict[str, bytes] = {}

    for i, path in enumerate(files):
        if on_progress and i % FOLDER_PROGRESS_EVERY == 0:
            on_progress(round(i / total * READ_PROGRESS_SHARE))

        key = key_for_backup_path(path.relative_to(root.parent).parts)
        if key is None:
            continue
        data = path.read_bytes()
        if not data:
            continue
        collected[key] = data

    if on_progress:
        on_progress(READ_PROGRESS_SHARE)
    logger.info("Collected %d media files from %s", len(collected), root)
    return collected


def collect_media_from_zip(
    path: Path, on_progress: ProgressCallback | None = None
) -> dict[str, bytes]:
    """Read every media file from a backup zip archive.

    Args:
        path: Archive path.
        on_progress: Receives 0-50 while entries are extracted.

    Returns:
        Media key to blob mapping. Directories and empty entries are skipped.

    Raises:
        ExtractFailedError: If the archive cannot be opened or an entry
            cannot be decompressed (encrypted or unsupported method).
    """
    collected: dict[str, bytes] = {}
    try:
        with zipfile.ZipFile(path) as archive:
            entries = archive.infolist()
            total = len(entries)
            for i, info in enumerate(entries):
                key = None if info.is_dir() else key_for_archive_path(info.filename)
                if key is not None and info.file_size > 0:
                    collected[key] = archive.read(info)
                if on_progress:
                    on_progress(round((i + 1) / total * READ_PROGRESS_SHARE))
    except (
        zipfile.BadZipFile,
        zlib.error,
        OSError,
        EOFError,
        RuntimeError,
        NotImplementedError,
    ) as e:
        logger.error("Failed to extract ZIP file %s: %s", path, e)
        raise extract_failed(str(path), e) from e

    logger.info("Collected %d media files from %s", len(collected), path)
    return collected

"""Persistent storage for imported media blobs and backup documents.

Media blobs are keyed by media key (``<chat_id>/<filename>``) and indexed by
chat id so a whole conversation can be fetched at once. Documents hold the
raw snapshot bytes and the contacts CSV so a session can be restored without
re-importing.

SQLiteBlobStore keeps a single connection and runs every sqlite3 call in a
worker thread; MemoryBlobStore is the non-persistent variant.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Protocol

from lime.errors import StorageFailedError, storage_failed
from lime.utils.async_utils import run_in_thread
from lime.utils.sqlite_retry import sqlite_retry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

# Document names
DOC_DATABASE = "database"
DOC_CONTACTS = "contacts"

ProgressCallback = Callable[[int], None]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    name TEXT PRIMARY KEY,
    data BLOB NOT NULL
);
CREATE TABLE IF NOT EXISTS media (
    key TEXT PRIMARY KEY,
    chat_id TEXT NOT NULL,
    data BLOB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_media_chat_id ON media(chat_id);
"""


def chat_id_of(key: str) -> str:
    """Chat id part of a media key."""
    return key.split("/", 1)[0]


def _batch_percent(done: int, total: int) -> int:
    return min(100, round(done / total * 100))


class BlobStore(Protocol):
    """Async key-value capability for media blobs and documents."""

    async def save_media(self, key: str, data: bytes) -> None: ...

    async def save_all_media(
        self,
        items: Mapping[str, bytes],
        on_progress: ProgressCallback | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None: ...

    async def load_media(self, key: str) -> bytes | None: ...

    async def load_media_by_chat(self, chat_id: str) -> dict[str, bytes]: ...

    async def load_media_keys(self) -> set[str]: ...

    async def save_document(self, name: str, data: bytes) -> None: ...

    async def load_document(self, name: str) -> bytes | None: ...

    async def clear_all(self) -> None: ...

    async def close(self) -> None: ...


class MemoryBlobStore:
    """Non-persistent BlobStore backed by dictionaries."""

    def __init__(self) -> None:
        self._media: dict[str, bytes] = {}
        self._documents: dict[str, bytes] = {}

    async def save_media(self, key: str, data: bytes) -> None:
        self._media[key] = data

    async def save_all_media(
        self,
        items: Mapping[str, bytes],
        on_progress: ProgressCallback | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        entries = list(items.items())
        total = len(entries)
        for start in range(0, total, batch_size):
            batch = entries[start : start + batch_size]
            self._media.update(batch)
            if on_progress:
                on_progress(_batch_percent(start + len(batch), total))
            await asyncio.sleep(0)

    async def load_media(self, key: str) -> bytes | None:
        return self._media.get(key)

    async def load_media_by_chat(self, chat_id: str) -> dict[str, bytes]:
        return {key: data for key, data in self._media.items() if chat_id_of(key) == chat_id}

    async def load_media_keys(self) -> set[str]:
        return set(self._media)

    async def save_document(self, name: str, data: bytes) -> None:
        self._documents[name] = data

    async def load_document(self, name: str) -> bytes | None:
        return self._documents.get(name)

    async def clear_all(self) -> None:
        self._media.clear()
        self._documents.clear()

    async def close(self) -> None:
        pass


class SQLiteBlobStore:
    """BlobStore persisted in a local SQLite file.

    Bulk writes are committed one batch per transaction, so a failure aborts
    only the current batch and keeps everything committed before it.

    Example:
        store = SQLiteBlobStore(Path("~/.lime/storage.db").expanduser())
        await store.save_all_media(files, on_progress=print)
        keys = await store.load_media_keys()
        await store.close()
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._keys_cache: set[str] | None = None

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.path), check_same_thread=False)
                conn.executescript(_SCHEMA)
            except (sqlite3.Error, OSError) as e:
                raise storage_failed("open storage", str(self.path), e) from e
            self._connection = conn
            logger.debug("Opened blob store at %s", self.path)
        return self._connection

    @sqlite_retry()
    def _write(self, sql: str, rows: Iterable[tuple[object, ...]]) -> None:
        with self._lock:
            conn = self._get_connection()
            with conn:
                conn.executemany(sql, rows)

    @sqlite_retry()
    def _read(self, sql: str, params: tuple[object, ...] = ()) -> list[tuple[object, ...]]:
        with self._lock:
            return self._get_connection().execute(sql, params).fetchall()

    def _write_or_raise(
        self, operation: str, sql: str, rows: Iterable[tuple[object, ...]]
    ) -> None:
        try:
            self._write(sql, list(rows))
        except sqlite3.Error as e:
            raise storage_failed(operation, str(self.path), e) from e

    def _read_or_raise(
        self, operation: str, sql: str, params: tuple[object, ...] = ()
    ) -> list[tuple[object, ...]]:
        try:
            return self._read(sql, params)
        except sqlite3.Error as e:
            raise storage_failed(operation, str(self.path), e) from e

    async def save_media(self, key: str, data: bytes) -> None:
        await run_in_thread(
            self._write_or_raise,
            "save media",
            "INSERT OR REPLACE INTO media (key, chat_id, data) VALUES (?, ?, ?)",
            [(key, chat_id_of(key), data)],
        )
        if self._keys_cache is not None:
            self._keys_cache.add(key)

    async def save_all_media(
        self,
        items: Mapping[str, bytes],
        on_progress: ProgressCallback | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Persist many blobs, one transaction per batch.

        Args:
            items: Media key to blob mapping.
            on_progress: Called with a 0-100 percentage after each batch.
            batch_size: Blobs per transaction.

        Raises:
            StorageFailedError: If a batch cannot be written. Earlier batches
                stay committed.
        """
        entries = list(items.items())
        total = len(entries)
        if total == 0:
            return

        for start in range(0, total, batch_size):
            batch = entries[start : start + batch_size]
            await run_in_thread(
                self._write_or_raise,
                "save media batch",
                "INSERT OR REPLACE INTO media (key, chat_id, data) VALUES (?, ?, ?)",
                [(key, chat_id_of(key), data) for key, data in batch],
            )
            if self._keys_cache is not None:
                self._keys_cache.update(key for key, _ in batch)
            if on_progress:
                on_progress(_batch_percent(start + len(batch), total))

        logger.info("Saved %d media files to %s", total, self.path)

    async def load_media(self, key: str) -> bytes | None:
        rows = await run_in_thread(
            self._read_or_raise, "load media", "SELECT data FROM media WHERE key = ?", (key,)
        )
        return bytes(rows[0][0]) if rows else None

    async def load_media_by_chat(self, chat_id: str) -> dict[str, bytes]:
        rows = await run_in_thread(
            self._read_or_raise,
            "load media by chat",
            "SELECT key, data FROM media WHERE chat_id = ?",
            (chat_id,),
        )
        return {str(key): bytes(data) for key, data in rows}

    async def load_media_keys(self) -> set[str]:
        if self._keys_cache is None:
            rows = await run_in_thread(
                self._read_or_raise, "load media keys", "SELECT key FROM media"
            )
            self._keys_cache = {str(row[0]) for row in rows}
        return set(self._keys_cache)

    async def save_document(self, name: str, data: bytes) -> None:
        await run_in_thread(
            self._write_or_raise,
            f"save {name}",
            "INSERT OR REPLACE INTO documents (name, data) VALUES (?, ?)",
            [(name, data)],
        )

    async def load_document(self, name: str) -> bytes | None:
        rows = await run_in_thread(
            self._read_or_raise,
            f"load {name}",
            "SELECT data FROM documents WHERE name = ?",
            (name,),
        )
        return bytes(rows[0][0]) if rows else None

    async def clear_all(self) -> None:
        """Delete every stored blob and document."""
        self._keys_cache = None
        failures: list[str] = []
        for table in ("documents", "media"):
            try:
                await run_in_thread(
                    self._write_or_raise, f"clear {table}", f"DELETE FROM {table}", [()]
                )
            except StorageFailedError as e:
                failures.append(str(e))
        if failures:
            logger.error("Some stores failed to clear: %s", failures)
            raise StorageFailedError(
                "; ".join(failures), operation="clear all", store_path=str(self.path)
            )

    async def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.close()
                except sqlite3.Error:
                    logger.debug("Error closing blob store", exc_info=True)
                self._connection = None
        self._keys_cache = None

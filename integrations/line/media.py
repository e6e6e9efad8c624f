"""Media locator for blobs imported from the ``chats_backup`` folder.

Two tiers:
- a hot map of loaded blobs, each materialized as a local file and
  addressed by its ``file://`` URL
- the set of media keys known to exist in the persistent BlobStore,
  loaded cheaply without fetching any blob

The synchronous lookup only ever answers from the hot map. A key that is
known but not loaded gets a background load scheduled and the call returns
None; callers re-query later or await ``get_media_url_async``.

Per-key states: unknown -> known -> loading -> loaded. A loading key has
exactly one in-flight task shared by every caller.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import shutil
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from lime.errors import StorageFailedError
from lime.utils.async_utils import task_callback

from .storage import DEFAULT_BATCH_SIZE, BlobStore, MemoryBlobStore

logger = logging.getLogger(__name__)


def media_key(chat_id: str, filename: str) -> str:
    """Build the ``<chat_id>/<filename>`` key used by every media tier."""
    return f"{chat_id}/{filename}"


class MediaState(StrEnum):
    UNKNOWN = "unknown"
    KNOWN = "known"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass(frozen=True)
class MediaFile:
    """A loaded blob and the local file backing its URL."""

    data: bytes
    path: Path

    @property
    def url(self) -> str:
        return self.path.as_uri()


class MediaLocator:
    """Resolves media keys to local URLs, loading blobs lazily from a store.

    Example:
        locator = MediaLocator(store)
        await locator.load_from_store()
        await locator.preload_chat_media(chat_id)
        url = locator.get_media_url(chat_id, "12345")
    """

    def __init__(
        self,
        store: BlobStore | None = None,
        cache_dir: Path | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize the locator.

        Args:
            store: Persistent tier. Defaults to a MemoryBlobStore.
            cache_dir: Parent directory for materialized files. Defaults to
                the system temp directory.
            batch_size: Blobs per transaction when persisting imports.
        """
        self.store: BlobStore = store if store is not None else MemoryBlobStore()
        self.batch_size = batch_size
        self._cache_root = cache_dir
        self._cache_dir: Path | None = None
        self._files: dict[str, MediaFile] = {}
        self._keys: set[str] = set()
        self._loading: dict[str, asyncio.Task[MediaFile | None]] = {}
        self._background: set[asyncio.Task[MediaFile | None]] = set()
        self._generation = 0
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # Local file handling

    def _ensure_cache_dir(self) -> Path:
        if self._cache_dir is None:
            if self._cache_root is not None:
                self._cache_root.mkdir(parents=True, exist_ok=True)
            self._cache_dir = Path(
                tempfile.mkdtemp(
                    prefix="lime-media-",
                    dir=str(self._cache_root) if self._cache_root is not None else None,
                )
            )
        return self._cache_dir

    def _register(self, key: str, data: bytes) -> MediaFile:
        """Materialize a blob and add it to the hot map.

        Re-checks the hot map first so racing loads never issue a second URL
        for the same key.
        """
        existing = self._files.get(key)
        if existing is not None:
            return existing

        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        path = self._ensure_cache_dir() / f"{digest}{Path(key).suffix}"
        path.write_bytes(data)

        media = MediaFile(data=data, path=path)
        self._files[key] = media
        return media

    @staticmethod
    def _release(media: MediaFile) -> None:
        try:
            media.path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Failed to release %s: %s", media.path, e)

    # Lookups

    def get_media_url(self, chat_id: str, filename: str) -> str | None:
        """Local URL for a media file if it is already loaded.

        A known but unloaded key gets a background load scheduled on the
        running event loop (if any). Never raises.
        """
        key = media_key(chat_id, filename)
        media = self._files.get(key)
        if media is not None:
            return media.url

        if key in self._keys:
            self._schedule_load(key)
        return None

    async def get_media_url_async(self, chat_id: str, filename: str) -> str | None:
        """Local URL for a media file, loading it from the store if needed."""
        key = media_key(chat_id, filename)
        media = self._files.get(key)
        if media is not None:
            return media.url

        if key not in self._keys:
            return None

        media = await self._ensure_load(key)
        return media.url if media is not None else None

    def has_media(self, chat_id: str, filename: str) -> bool:
        key = media_key(chat_id, filename)
        return key in self._files or key in self._keys

    def get_media_blob(self, chat_id: str, filename: str) -> bytes | None:
        media = self._files.get(media_key(chat_id, filename))
        return media.data if media is not None else None

    def get_media_count(self) -> int:
        return max(len(self._files), len(self._keys))

    def state_of(self, chat_id: str, filename: str) -> MediaState:
        key = media_key(chat_id, filename)
        if key in self._files:
            return MediaState.LOADED
        if key in self._loading:
            return MediaState.LOADING
        if key in self._keys:
            return MediaState.KNOWN
        return MediaState.UNKNOWN

    # Loading

    def _schedule_load(self, key: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, not loading %s", key)
            return

        task = self._ensure_load(key)
        if task not in self._background:
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            task.add_done_callback(task_callback(f"Lazy media load failed: {key}", logger))

    def _ensure_load(self, key: str) -> asyncio.Task[MediaFile | None]:
        """Return the in-flight load for a key, starting one if needed."""
        task = self._loading.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, self._generation))
            self._loading[key] = task
            task.add_done_callback(lambda t: self._forget_load(key, t))
        return task

    def _forget_load(self, key: str, task: asyncio.Task[MediaFile | None]) -> None:
        if self._loading.get(key) is task:
            del self._loading[key]

    async def _load(self, key: str, generation: int) -> MediaFile | None:
        try:
            data = await self.store.load_media(key)
        except StorageFailedError as e:
            logger.warning("Failed to lazy load media %s: %s", key, e)
            return None

        if generation != self._generation:
            logger.debug("Dropping media %s loaded before clear", key)
            return None
        if data is None:
            logger.debug("Media %s is known but missing from the store", key)
            return None
        return self._register(key, data)

    async def preload_chat_media(self, chat_id: str) -> int:
        """Load every known media file of a conversation in one store fetch.

        Returns:
            Number of files newly added to the hot map.
        """
        prefix = f"{chat_id}/"
        pending = [key for key in self._keys if key.startswith(prefix) and key not in self._files]
        if not pending:
            return 0

        generation = self._generation
        blobs = await self.store.load_media_by_chat(chat_id)
        if generation != self._generation:
            logger.debug("Dropping preload of %s after clear", chat_id)
            return 0

        added = 0
        for key, data in blobs.items():
            if key not in self._files:
                self._register(key, data)
                added += 1
        logger.debug("Preloaded %d media files for %s", added, chat_id)
        return added

    async def load_from_store(self) -> bool:
        """Replace the known key-set with the keys in the store.

        Only keys are fetched; blobs load on demand.

        Returns:
            False when the store holds no media.
        """
        keys = await self.store.load_media_keys()
        if not keys:
            return False
        self.clear()
        self._keys = set(keys)
        self._initialized = True
        logger.info("Found %d media files in storage", len(keys))
        return True

    async def load_files(
        self,
        files: Mapping[str, bytes],
        persist: bool = True,
        on_progress: Callable[[int], None] | None = None,
    ) -> int:
        """Replace the media set with freshly ingested files.

        Args:
            files: Media key to blob mapping.
            persist: Also write the blobs to the store.
            on_progress: Receives 50-100 while persisting.

        Returns:
            Number of files registered.
        """
        self.clear()
        for key, data in files.items():
            self._register(key, data)
            self._keys.add(key)
        self._initialized = True

        if persist and files:

            def report(percent: int) -> None:
                if on_progress:
                    on_progress(50 + round(percent / 2))

            await self.store.save_all_media(files, on_progress=report, batch_size=self.batch_size)

        return len(files)

    def clear(self) -> None:
        """Release every local URL and forget all keys.

        Loads still in flight finish but their results are dropped.
        """
        for media in self._files.values():
            self._release(media)
        self._files.clear()
        self._keys.clear()
        self._loading.clear()
        self._generation += 1
        self._initialized = False

        if self._cache_dir is not None:
            shutil.rmtree(self._cache_dir, ignore_errors=True)
            self._cache_dir = None

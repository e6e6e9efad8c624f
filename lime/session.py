"""Backup session: one object owning every tier of a loaded LINE backup.

A session holds the persistent store, the contact directory, the media
locator, the attachment resolver and the snapshot reader. Nothing is
module-global; callers create a session, feed it a snapshot (and optionally
contacts and media) and query it.

Usage:
    async with BackupSession(store=MemoryBlobStore()) as session:
        await session.open_database(Path("naver_line_backup.db"))
        await session.import_media(Path("chats_backup.zip"))
        messages = await session.get_messages(chat_id)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Self

from contracts.line import ChatRoom, Message, SearchResult
from integrations.line.attachments import AttachmentResolver
from integrations.line.contacts import ContactDirectory
from integrations.line.ingest import collect_media_from_folder, collect_media_from_zip
from integrations.line.media import MediaLocator
from integrations.line.reader import BackupReader
from integrations.line.storage import (
    DOC_CONTACTS,
    DOC_DATABASE,
    BlobStore,
    MemoryBlobStore,
    SQLiteBlobStore,
)
from lime.config import LimeConfig, get_config
from lime.errors import backup_not_initialized
from lime.utils.async_utils import run_in_thread

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class BackupSession:
    """Context object for one loaded backup.

    Example:
        session = BackupSession()
        try:
            if not await session.restore():
                await session.open_database(snapshot_path)
            chats = await session.get_chats()
        finally:
            await session.aclose()
    """

    def __init__(
        self,
        config: LimeConfig | None = None,
        store: BlobStore | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Settings to use. Defaults to the shared configuration.
            store: Persistent tier. Defaults to a SQLiteBlobStore at the
                configured storage path.
        """
        self.config = config or get_config()
        self.store: BlobStore = (
            store if store is not None else SQLiteBlobStore(self.config.storage.path)
        )
        self.contacts = ContactDirectory()
        self.media = MediaLocator(
            self.store,
            cache_dir=self.config.media.cache_dir,
            batch_size=self.config.storage.batch_size,
        )
        self.resolver = AttachmentResolver(media=self.media, contacts=self.contacts)
        self._reader: BackupReader | None = None

    @classmethod
    def in_memory(cls, config: LimeConfig | None = None) -> BackupSession:
        """Session whose store does not outlive the process."""
        return cls(config=config, store=MemoryBlobStore())

    @property
    def is_open(self) -> bool:
        return self._reader is not None and self._reader.is_initialized

    @property
    def reader(self) -> BackupReader:
        """The open snapshot reader.

        Raises:
            NotInitializedError: If no snapshot has been opened.
        """
        if self._reader is None or not self._reader.is_initialized:
            raise backup_not_initialized()
        return self._reader

    # Loading

    async def open_database(self, source: Path | str | bytes, persist: bool = True) -> BackupReader:
        """Open a snapshot from a file path or raw bytes.

        Any previously open snapshot is closed first.

        Args:
            source: Snapshot file or its contents.
            persist: Also save the snapshot bytes to the store.

        Returns:
            The opened reader.

        Raises:
            LoadFailedError: If the snapshot cannot be opened.
            StorageFailedError: If persisting fails.
        """
        if isinstance(source, bytes):
            data: bytes | None = source
            reader = BackupReader(data=source, resolver=self.resolver, contacts=self.contacts)
        else:
            path = Path(source)
            reader = BackupReader(db_path=path, resolver=self.resolver, contacts=self.contacts)
            data = None

        await run_in_thread(reader.open)
        self._close_reader()
        self._reader = reader

        if persist:
            if data is None:
                data = await run_in_thread(Path(source).read_bytes)
            await self.store.save_document(DOC_DATABASE, data)
            logger.info("Saved snapshot to storage (%d bytes)", len(data))
        return reader

    async def load_contacts(self, text: str, persist: bool = True) -> int:
        """Load the contacts CSV, replacing any previous directory.

        Returns:
            Number of contacts loaded.
        """
        count = self.contacts.load_csv(text)
        if persist:
            await self.store.save_document(DOC_CONTACTS, text.encode("utf-8"))
        return count

    async def import_media(
        self,
        source: Path | str,
        persist: bool = True,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        """Import media from a ``chats_backup`` folder or zip archive.

        Args:
            source: Folder or archive path.
            persist: Also write the blobs to the store.
            on_progress: Receives 0-100 across reading and persisting.

        Returns:
            Number of media files imported.

        Raises:
            ExtractFailedError: If the archive cannot be read.
            StorageFailedError: If persisting fails.
        """
        path = Path(source)
        collect = collect_media_from_folder if path.is_dir() else collect_media_from_zip
        files = await run_in_thread(collect, path, on_progress)
        count = await self.media.load_files(files, persist=persist, on_progress=on_progress)
        if on_progress:
            on_progress(100)
        logger.info("Imported %d media files from %s", count, path)
        return count

    async def restore(self) -> bool:
        """Reopen a previously persisted snapshot, contacts and media keys.

        Returns:
            False when the store holds no snapshot.
        """
        data = await self.store.load_document(DOC_DATABASE)
        if data is None:
            logger.debug("No stored snapshot to restore")
            return False

        contacts = await self.store.load_document(DOC_CONTACTS)
        if contacts is not None:
            self.contacts.load_csv(contacts.decode("utf-8", errors="replace"))

        await self.open_database(data, persist=False)
        await self.media.load_from_store()
        logger.info("Restored backup from storage")
        return True

    # Queries

    async def get_chats(self) -> list[ChatRoom]:
        return await run_in_thread(self.reader.get_chats)

    async def get_messages(
        self, chat_id: str, limit: int | None = None, offset: int = 0
    ) -> list[Message]:
        """Page of messages with the conversation's media loaded first.

        Args:
            chat_id: Conversation id.
            limit: Page size. Defaults to the configured page size.
            offset: Number of newer messages to skip.
        """
        reader = self.reader
        await self.media.preload_chat_media(chat_id)
        page_size = limit if limit is not None else self.config.query.page_size
        return await run_in_thread(reader.get_messages, chat_id, page_size, offset)

    async def get_all_messages(self, chat_id: str, preload_media: bool = True) -> list[Message]:
        """Full history of a conversation, oldest first.

        With preload_media=False stored blobs stay in the store; attachments
        keep their kind but only already-loaded media get a URL.
        """
        reader = self.reader
        if preload_media:
            await self.media.preload_chat_media(chat_id)
        return await run_in_thread(reader.get_all_messages, chat_id)

    async def search_messages(
        self,
        query: str,
        limit: int | None = None,
        *,
        message_type: int | None = None,
        attachment_type: int | None = None,
        chat_id: str | None = None,
    ) -> list[SearchResult]:
        reader = self.reader
        search_limit = limit if limit is not None else self.config.query.search_limit
        return await run_in_thread(
            reader.search_messages,
            query,
            search_limit,
            message_type=message_type,
            attachment_type=attachment_type,
            chat_id=chat_id,
        )

    # Teardown

    def _close_reader(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    async def reset(self) -> None:
        """Close the snapshot and clear every tier, including the store."""
        self._close_reader()
        self.contacts.clear()
        self.media.clear()
        await self.store.clear_all()
        logger.info("Cleared all backup data")

    async def aclose(self) -> None:
        """Release local resources; stored data is kept."""
        self._close_reader()
        self.media.clear()
        await self.store.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

"""LINE backup integration.

Provides read-only access to an exported LINE database snapshot, the contacts
CSV and the ``chats_backup`` media set.

Example:
    from integrations.line import AttachmentResolver, BackupReader, ContactDirectory

    contacts = ContactDirectory()
    contacts.load_csv(csv_text)

    with BackupReader(db_path=Path("naver_line_backup.db"), contacts=contacts) as reader:
        for room in reader.get_chats():
            messages = reader.get_messages(room.id)
"""

from .attachments import AttachmentResolver, determine_attachment
from .contacts import ContactDirectory
from .ingest import collect_media_from_folder, collect_media_from_zip
from .media import MediaLocator, MediaState, media_key
from .parser import parse_parameter
from .reader import BackupReader
from .storage import BlobStore, MemoryBlobStore, SQLiteBlobStore

__all__ = [
    "AttachmentResolver",
    "BackupReader",
    "BlobStore",
    "ContactDirectory",
    "MediaLocator",
    "MediaState",
    "MemoryBlobStore",
    "SQLiteBlobStore",
    "collect_media_from_folder",
    "collect_media_from_zip",
    "determine_attachment",
    "media_key",
    "parse_parameter",
]

"""Read-only access to an exported LINE backup database.

The snapshot is opened either from a file (read-only URI) or from raw bytes
(deserialized into an in-memory connection). Rows are mapped into the
contracts in contracts/line.py.
"""

import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Self

from contracts.line import (
    AttachmentType,
    ChatRoom,
    ContactLookup,
    Message,
    MessageType,
    SearchResult,
    TableSchema,
    TypeBreakdown,
    TypeCount,
)
from lime.errors import (
    BackupError,
    LoadFailedError,
    QueryFailedError,
    backup_load_failed,
    backup_not_initialized,
)
from lime.utils.sqlite_retry import sqlite_retry

from .attachments import AttachmentResolver
from .parser import coerce_str, is_status_read, parse_int
from .queries import REQUIRED_TABLES, get_query

logger = logging.getLogger(__name__)

# Timeout for SQLite connections (seconds)
DB_TIMEOUT_SECONDS = 5.0

DEFAULT_CHAT_NAME = "Unknown"
DEFAULT_LAST_MESSAGE = "No message"

Row = dict[str, Any]


def _row_to_dict(row: sqlite3.Row) -> Row:
    return {key: row[key] for key in row.keys()}


def _split_related(value: Any) -> tuple[int, ...]:
    if not isinstance(value, str) or not value:
        return ()
    related = (parse_int(part) for part in value.split(","))
    return tuple(number for number in related if number is not None)


class BackupReader:
    """Read-only access to a LINE backup snapshot.

    Example:
        # Preferred: use as context manager for automatic cleanup
        with BackupReader(db_path=Path("naver_line_backup.db"), contacts=directory) as reader:
            for room in reader.get_chats():
                messages = reader.get_messages(room.id, limit=50)

        # From bytes already in memory
        reader = BackupReader(data=snapshot_bytes)
        try:
            results = reader.search_messages("hello")
        finally:
            reader.close()
    """

    def __init__(
        self,
        db_path: Path | None = None,
        data: bytes | None = None,
        resolver: AttachmentResolver | None = None,
        contacts: ContactLookup | None = None,
    ) -> None:
        """Initialize the reader.

        Args:
            db_path: Snapshot file to open read-only.
            data: Snapshot bytes, used when db_path is None.
            resolver: Attachment resolver. Defaults to one without media.
            contacts: Contact lookup for chat and sender names.
        """
        self.db_path = Path(db_path) if db_path is not None else None
        self._data = data
        self.contacts = contacts
        self.resolver = resolver or AttachmentResolver(contacts=contacts)
        self._connection: sqlite3.Connection | None = None
        self._tables: set[str] = set()

    @property
    def is_initialized(self) -> bool:
        return self._connection is not None

    @property
    def _source(self) -> str:
        return str(self.db_path) if self.db_path is not None else "<memory>"

    def open(self) -> None:
        """Open and validate the snapshot.

        Raises:
            NotInitializedError: If neither a path nor bytes were given.
            LoadFailedError: If the snapshot is not a readable LINE backup.
        """
        if self._connection is not None:
            return

        if self.db_path is not None:
            conn = self._connect_file(self.db_path)
        elif self._data is not None:
            conn = self._connect_bytes(self._data)
        else:
            raise backup_not_initialized()

        try:
            tables = {row["name"] for row in conn.execute(get_query("table_names"))}
        except sqlite3.Error as e:
            conn.close()
            raise backup_load_failed(str(e), self._source, e) from e

        missing = [name for name in REQUIRED_TABLES if name not in tables]
        if missing:
            conn.close()
            raise backup_load_failed(f"missing tables: {', '.join(missing)}", self._source)

        self._connection = conn
        self._tables = tables
        logger.debug("Opened backup %s (%d tables)", self._source, len(tables))

    def _connect_file(self, path: Path) -> sqlite3.Connection:
        if not path.exists():
            raise LoadFailedError(f"Backup database not found: {path}", db_path=str(path))
        try:
            uri = f"{path.resolve().as_uri()}?mode=ro"
            conn = sqlite3.connect(
                uri,
                uri=True,
                timeout=DB_TIMEOUT_SECONDS,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise backup_load_failed(str(e), str(path), e) from e
        conn.row_factory = sqlite3.Row
        return conn

    def _connect_bytes(self, data: bytes) -> sqlite3.Connection:
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        try:
            conn.deserialize(data)
            conn.execute("PRAGMA query_only = ON")
        except sqlite3.Error as e:
            conn.close()
            raise backup_load_failed(str(e), cause=e) from e
        conn.row_factory = sqlite3.Row
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            self.open()
        assert self._connection is not None
        return self._connection

    @sqlite_retry()
    def _fetch(self, query: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return self._get_connection().execute(query, params).fetchall()

    def _execute(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        try:
            rows = self._fetch(query, params)
        except sqlite3.Error as e:
            raise QueryFailedError(
                f"Backup query failed: {e}",
                query=query,
                db_path=self._source,
                cause=e,
            ) from e
        return [_row_to_dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection.

        The reader reopens lazily on the next query.
        """
        if self._connection is not None:
            try:
                self._connection.close()
            except sqlite3.Error:
                logger.debug("Error closing backup connection", exc_info=True)
            self._connection = None
        self._tables = set()

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit context manager and close connection."""
        self.close()

    def check_access(self) -> bool:
        """Check that the snapshot can be opened and queried.

        Returns:
            True if the chat table is readable, False otherwise
        """
        try:
            self._execute("SELECT 1 FROM chat LIMIT 1")
            return True
        except BackupError as e:
            logger.warning("Cannot read backup %s: %s", self._source, e)
            return False

    def _contact_name(self, mid: str | None) -> str | None:
        if not mid or self.contacts is None:
            return None
        return self.contacts.get_contact_name(mid)

    # Conversations

    def _load_groups(self) -> dict[str, str | None]:
        if "groups" not in self._tables:
            return {}
        return {
            coerce_str(row.get("id"), "") or "": coerce_str(row.get("name"))
            for row in self._execute(get_query("groups"))
        }

    def get_chats(self) -> list[ChatRoom]:
        """List conversations, most recently active first.

        Raises:
            NotInitializedError: If no snapshot was given.
            QueryFailedError: If the chat table cannot be read.
        """
        rows = self._execute(get_query("chats"))
        groups = self._load_groups()
        return [self._row_to_chat(row, groups) for row in rows]

    def _row_to_chat(self, row: Row, groups: dict[str, str | None]) -> ChatRoom:
        chat_id = coerce_str(row.get("chat_id"), "") or ""
        is_group = chat_id in groups

        name = coerce_str(row.get("chat_name"))
        if is_group:
            name = groups[chat_id]
        elif not name:
            name = self._contact_name(chat_id) or DEFAULT_CHAT_NAME

        last_message = (
            coerce_str(row.get("input_text"))
            or coerce_str(row.get("last_message"))
            or DEFAULT_LAST_MESSAGE
        )
        return ChatRoom(
            id=chat_id,
            name=name or DEFAULT_CHAT_NAME,
            last_message=last_message,
            last_message_time=parse_int(row.get("last_created_time"), 0) or 0,
            is_group=is_group,
            unread_count=max(0, parse_int(row.get("unread_count"), 0) or 0),
        )

    # Messages

    def get_messages(self, chat_id: str, limit: int = 100, offset: int = 0) -> list[Message]:
        """Get a page of messages from a conversation.

        The page is taken newest-first (offset 0 is the latest messages) and
        returned in chronological order.

        Args:
            chat_id: Conversation id
            limit: Maximum number of messages to return
            offset: Number of newer messages to skip

        Returns:
            List of Message objects, oldest first
        """
        rows = self._execute(get_query("messages"), (chat_id, limit, offset))
        messages = [self._row_to_message(row, chat_id) for row in rows]
        messages.reverse()
        return messages

    def get_all_messages(self, chat_id: str) -> list[Message]:
        """Get the full history of a conversation, oldest first."""
        rows = self._execute(get_query("all_messages"), (chat_id,))
        return [self._row_to_message(row, chat_id) for row in rows]

    def _row_to_message(self, row: Row, chat_id: str) -> Message:
        from_id = coerce_str(row.get("from_mid"), "") or ""
        return Message(
            id=parse_int(row.get("id"), 0) or 0,
            server_id=coerce_str(row.get("server_id")),
            type=MessageType.from_raw(row.get("type")),
            attachment_type=AttachmentType.from_raw(row.get("attachement_type")),
            chat_id=coerce_str(row.get("chat_id")) or chat_id,
            from_id=from_id,
            from_name=self._contact_name(from_id),
            content=coerce_str(row.get("content")),
            timestamp=parse_int(row.get("created_time"), 0) or 0,
            status="read" if is_status_read(row.get("status")) else "sent",
            attachment=self.resolver.resolve(row, chat_id),
        )

    def search_messages(
        self,
        query: str,
        limit: int = 50,
        *,
        message_type: int | None = None,
        attachment_type: int | None = None,
        chat_id: str | None = None,
    ) -> list[SearchResult]:
        """Case-sensitive substring search over message content.

        Args:
            query: Text to look for; surrounding whitespace is ignored
            limit: Maximum number of results
            message_type: Only rows with this raw ``type`` value
            attachment_type: Only rows with this raw ``attachement_type`` value
            chat_id: Only rows from this conversation

        Returns:
            Matching messages, newest first. A blank query with no filter
            returns [] without touching the database; a blank query with a
            filter lists every row the filters accept.
        """
        needle = query.strip() if isinstance(query, str) else ""
        filters = (message_type, attachment_type, chat_id)
        if not needle and all(value is None for value in filters):
            return []

        params = (
            needle,
            needle,
            message_type,
            message_type,
            attachment_type,
            attachment_type,
            chat_id,
            chat_id,
            limit,
        )
        rows = self._execute(get_query("search"), params)
        results = []
        for row in rows:
            from_id = coerce_str(row.get("from_mid"), "") or ""
            results.append(
                SearchResult(
                    id=parse_int(row.get("id"), 0) or 0,
                    chat_id=coerce_str(row.get("chat_id"), "") or "",
                    content=coerce_str(row.get("content"), "") or "",
                    timestamp=parse_int(row.get("created_time"), 0) or 0,
                    from_id=from_id,
                    from_name=self._contact_name(from_id),
                )
            )
        return results

    # Inspection

    def get_type_breakdown(self) -> TypeBreakdown:
        """Count chat_history rows per message type and per attachment type."""

        def counts(query_name: str, column: str) -> list[TypeCount]:
            return [
                TypeCount(
                    value=parse_int(row.get(column)),
                    count=parse_int(row.get("count"), 0) or 0,
                    related=_split_related(row.get("related")),
                )
                for row in self._execute(get_query(query_name))
            ]

        return TypeBreakdown(
            message_types=counts("type_counts", "type"),
            attachment_types=counts("attachment_type_counts", "attachement_type"),
        )

    def get_schema(self) -> list[TableSchema]:
        """Table names and CREATE statements of the snapshot."""
        return [
            TableSchema(name=str(row["name"]), sql=coerce_str(row.get("sql")))
            for row in self._execute(get_query("schema"))
        ]

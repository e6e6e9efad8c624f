"""Shared builders and sample data for LIME tests."""

import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any

ALICE = "u" + "a" * 32
BOB = "u" + "b" * 32
CAROL = "u" + "c" * 32
GROUP = "c" + "1" * 32

# 2024-01-15 10:30:00 UTC
BASE_TIME = 1_705_314_600_000
MINUTE = 60_000
DAY = 24 * 60 * MINUTE

SCHEMA = """
CREATE TABLE chat (
    chat_id TEXT PRIMARY KEY,
    chat_name TEXT,
    last_message TEXT,
    input_text TEXT,
    last_created_time INTEGER,
    unread_count INTEGER
);
CREATE TABLE chat_history (
    id INTEGER PRIMARY KEY,
    server_id TEXT,
    type INTEGER,
    attachement_type INTEGER,
    chat_id TEXT,
    from_mid TEXT,
    content TEXT,
    parameter TEXT,
    location_name TEXT,
    location_address TEXT,
    location_latitude INTEGER,
    location_longitude INTEGER,
    status INTEGER,
    created_time INTEGER
);
CREATE TABLE "groups" (
    id TEXT PRIMARY KEY,
    name TEXT
);
"""

CHAT_COLUMNS = (
    "chat_id",
    "chat_name",
    "last_message",
    "input_text",
    "last_created_time",
    "unread_count",
)
HISTORY_COLUMNS = (
    "id",
    "server_id",
    "type",
    "attachement_type",
    "chat_id",
    "from_mid",
    "content",
    "parameter",
    "location_name",
    "location_address",
    "location_latitude",
    "location_longitude",
    "status",
    "created_time",
)


def build_line_db(
    path: Path,
    chats: Sequence[dict[str, Any]] = (),
    messages: Sequence[dict[str, Any]] = (),
    groups: Sequence[tuple[str, str]] = (),
    schema: str = SCHEMA,
) -> Path:
    """Write a LINE-schema snapshot with the given rows.

    Missing columns in chats and messages are stored as NULL.
    """
    conn = sqlite3.connect(path)
    try:
        conn.executescript(schema)
        conn.executemany(
            f"INSERT INTO chat ({', '.join(CHAT_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in CHAT_COLUMNS)})",
            [tuple(chat.get(col) for col in CHAT_COLUMNS) for chat in chats],
        )
        conn.executemany(
            f"INSERT INTO chat_history ({', '.join(HISTORY_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in HISTORY_COLUMNS)})",
            [tuple(msg.get(col) for col in HISTORY_COLUMNS) for msg in messages],
        )
        conn.executemany('INSERT INTO "groups" (id, name) VALUES (?, ?)', groups)
        conn.commit()
    finally:
        conn.close()
    return path


SAMPLE_CHATS = [
    {
        "chat_id": ALICE,
        "chat_name": None,
        "last_message": "Sticker",
        "last_created_time": BASE_TIME + 2 * MINUTE,
        "unread_count": 1,
    },
    {
        "chat_id": GROUP,
        "chat_name": "stale name",
        "last_message": "group event",
        "input_text": "draft reply",
        "last_created_time": BASE_TIME + DAY,
        "unread_count": 0,
    },
    {
        "chat_id": CAROL,
        "chat_name": "Carol Stored",
        "last_message": None,
        "last_created_time": BASE_TIME - DAY,
        "unread_count": -3,
    },
]

SAMPLE_MESSAGES = [
    # 1:1 chat with Alice, inserted out of time order on purpose
    {
        "id": 3,
        "type": 5,
        "attachement_type": 7,
        "chat_id": ALICE,
        "from_mid": ALICE,
        "parameter": "STKPKGID\t123\tSTKID\t456",
        "status": 3,
        "created_time": BASE_TIME + 2 * MINUTE,
    },
    {
        "id": 1,
        "server_id": "9001",
        "type": 1,
        "attachement_type": 0,
        "chat_id": ALICE,
        "from_mid": ALICE,
        "content": "Hello there",
        "status": 3,
        "created_time": BASE_TIME,
    },
    {
        "id": 2,
        "type": 1,
        "attachement_type": 0,
        "chat_id": ALICE,
        "from_mid": None,
        "content": "Hi, how are you?",
        "status": 1,
        "created_time": BASE_TIME + MINUTE,
    },
    # Group chat
    {
        "id": 10,
        "type": 2,
        "attachement_type": 1,
        "chat_id": GROUP,
        "from_mid": BOB,
        "created_time": BASE_TIME + DAY - 3 * MINUTE,
    },
    {
        "id": 11,
        "type": 4,
        "attachement_type": 6,
        "chat_id": GROUP,
        "from_mid": None,
        "parameter": "TYPE\tV\tRESULT\tcanceled\tDURATION\t0",
        "created_time": BASE_TIME + DAY - 2 * MINUTE,
    },
    {
        "id": 12,
        "type": 13,
        "attachement_type": 18,
        "chat_id": GROUP,
        "from_mid": BOB,
        "parameter": f"LOC_KEY\tA_MC\tLOC_ARGS\t{BOB},{ALICE}",
        "created_time": BASE_TIME + DAY - MINUTE,
    },
    {
        "id": 13,
        "type": 1,
        "attachement_type": 0,
        "chat_id": GROUP,
        "from_mid": BOB,
        "content": "hello everyone",
        "created_time": BASE_TIME + DAY,
    },
]

SAMPLE_GROUPS = [(GROUP, "Family")]

CONTACTS_CSV = f'mid,name\n"{ALICE}","Alice"\n"{BOB}","Bob"\n'

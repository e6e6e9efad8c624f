"""Pytest configuration for LIME tests.

Builds small LINE-schema snapshots on disk so reader, session and CLI tests
run against real SQLite files instead of mocks.
"""

from collections.abc import Iterator
from pathlib import Path

import pytest

from lime.config import LimeConfig, reset_config
from tests.helpers import (
    ALICE,
    CONTACTS_CSV,
    GROUP,
    SAMPLE_CHATS,
    SAMPLE_GROUPS,
    SAMPLE_MESSAGES,
    build_line_db,
)


@pytest.fixture(autouse=True)
def _isolated_config():
    """Keep the shared configuration singleton from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def line_db(tmp_path: Path) -> Path:
    """Sample snapshot with a 1:1 chat, a group chat and a named chat."""
    return build_line_db(
        tmp_path / "naver_line_backup.db",
        chats=SAMPLE_CHATS,
        messages=SAMPLE_MESSAGES,
        groups=SAMPLE_GROUPS,
    )


@pytest.fixture
def line_db_bytes(line_db: Path) -> bytes:
    return line_db.read_bytes()


@pytest.fixture
def contacts_csv() -> str:
    return CONTACTS_CSV


@pytest.fixture
def media_tree(tmp_path: Path) -> Path:
    """A ``chats_backup`` folder with two media files and one empty file."""
    root = tmp_path / "export" / "chats_backup"
    alice_dir = root / ALICE / "messages"
    group_dir = root / GROUP / "messages"
    alice_dir.mkdir(parents=True)
    group_dir.mkdir(parents=True)
    (alice_dir / "voice_3.aac").write_bytes(b"aac-data")
    (group_dir / "10").write_bytes(b"\x89PNG-image")
    (group_dir / "empty").write_bytes(b"")
    return root


@pytest.fixture
def test_config(tmp_path: Path) -> Iterator[LimeConfig]:
    """Configuration pointing storage and media cache into tmp_path."""
    config = LimeConfig()
    config.storage.path = tmp_path / "store" / "storage.db"
    config.media.cache_dir = tmp_path / "cache"
    config.retry.sqlite_base_delay = 0.0
    config.retry.sqlite_max_delay = 0.0
    yield config

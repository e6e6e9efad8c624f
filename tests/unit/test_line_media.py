"""Unit tests for the media locator."""

import asyncio
from pathlib import Path

import pytest

from integrations.line.media import MediaLocator, MediaState, media_key
from integrations.line.storage import MemoryBlobStore
from lime.errors import StorageFailedError


class SlowStore(MemoryBlobStore):
    """MemoryBlobStore whose single-key loads wait for a gate and are counted."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.load_calls = 0

    async def load_media(self, key: str) -> bytes | None:
        self.load_calls += 1
        await self.gate.wait()
        return await super().load_media(key)


class FailingStore(MemoryBlobStore):
    async def load_media(self, key: str) -> bytes | None:
        raise StorageFailedError("disk gone", operation="load media")


async def known_locator(store, tmp_path, files):
    for key, data in files.items():
        await store.save_media(key, data)
    locator = MediaLocator(store, cache_dir=tmp_path / "cache")
    await locator.load_from_store()
    return locator


class TestMediaKey:
    def test_format(self):
        assert media_key("u1", "voice_3.aac") == "u1/voice_3.aac"


class TestLookups:
    """Tests for synchronous lookups."""

    def test_unknown_key_returns_none(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path)
        assert locator.get_media_url("c1", "nope") is None
        assert locator.has_media("c1", "nope") is False
        assert locator.get_media_blob("c1", "nope") is None
        assert locator.state_of("c1", "nope") is MediaState.UNKNOWN

    def test_known_key_without_loop_returns_none(self, tmp_path):
        """Outside an event loop a known key stays known and returns None."""
        locator = MediaLocator(cache_dir=tmp_path)
        locator._keys.add("c1/1")

        assert locator.get_media_url("c1", "1") is None
        assert locator.state_of("c1", "1") is MediaState.KNOWN

    @pytest.mark.asyncio
    async def test_loaded_files_have_file_urls(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path / "cache")
        await locator.load_files({"c1/voice_1.aac": b"aac"}, persist=False)

        url = locator.get_media_url("c1", "voice_1.aac")

        assert url is not None
        assert url.startswith("file://")
        assert url.endswith(".aac")
        assert locator.get_media_blob("c1", "voice_1.aac") == b"aac"
        assert locator.state_of("c1", "voice_1.aac") is MediaState.LOADED


class TestLazyLoading:
    """Tests for background and awaited loads."""

    @pytest.mark.asyncio
    async def test_sync_lookup_schedules_background_load(self, tmp_path):
        locator = await known_locator(MemoryBlobStore(), tmp_path, {"c1/1": b"img"})

        assert locator.get_media_url("c1", "1") is None
        assert locator.state_of("c1", "1") is MediaState.LOADING

        await locator.get_media_url_async("c1", "1")
        assert locator.get_media_url("c1", "1") is not None

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_fetch(self, tmp_path):
        store = SlowStore()
        locator = await known_locator(store, tmp_path, {"c1/1": b"img"})

        waiters = [asyncio.create_task(locator.get_media_url_async("c1", "1")) for _ in range(5)]
        await asyncio.sleep(0)
        locator.get_media_url("c1", "1")
        store.gate.set()
        urls = await asyncio.gather(*waiters)

        assert store.load_calls == 1
        assert len(set(urls)) == 1
        assert urls[0] is not None

    @pytest.mark.asyncio
    async def test_async_lookup_of_unknown_key(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path)
        assert await locator.get_media_url_async("c1", "missing") is None

    @pytest.mark.asyncio
    async def test_clear_drops_in_flight_load(self, tmp_path):
        store = SlowStore()
        locator = await known_locator(store, tmp_path, {"c1/1": b"img"})

        pending = asyncio.create_task(locator.get_media_url_async("c1", "1"))
        await asyncio.sleep(0)
        locator.clear()
        store.gate.set()

        assert await pending is None
        assert locator.get_media_count() == 0
        assert locator.state_of("c1", "1") is MediaState.UNKNOWN

    @pytest.mark.asyncio
    async def test_failed_load_returns_none(self, tmp_path):
        locator = await known_locator(FailingStore(), tmp_path, {})
        locator._keys.add("c1/1")

        assert await locator.get_media_url_async("c1", "1") is None
        assert locator.state_of("c1", "1") is MediaState.KNOWN


class TestPreload:
    """Tests for preloading a conversation."""

    @pytest.mark.asyncio
    async def test_preload_loads_every_known_key_of_chat(self, tmp_path):
        files = {"c1/1": b"a", "c1/voice_2.aac": b"b", "c2/1": b"c"}
        locator = await known_locator(MemoryBlobStore(), tmp_path, files)

        added = await locator.preload_chat_media("c1")

        assert added == 2
        assert locator.state_of("c1", "1") is MediaState.LOADED
        assert locator.state_of("c1", "voice_2.aac") is MediaState.LOADED
        assert locator.state_of("c2", "1") is MediaState.KNOWN

    @pytest.mark.asyncio
    async def test_preload_twice_adds_nothing(self, tmp_path):
        locator = await known_locator(MemoryBlobStore(), tmp_path, {"c1/1": b"a"})
        await locator.preload_chat_media("c1")
        assert await locator.preload_chat_media("c1") == 0

    @pytest.mark.asyncio
    async def test_preload_prefix_is_exact(self, tmp_path):
        """Chat c1 does not pick up keys of chat c10."""
        locator = await known_locator(MemoryBlobStore(), tmp_path, {"c10/1": b"a"})
        assert await locator.preload_chat_media("c1") == 0


class TestLoading:
    """Tests for replacing the media set."""

    @pytest.mark.asyncio
    async def test_load_from_empty_store(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path)
        assert await locator.load_from_store() is False
        assert locator.is_initialized is False

    @pytest.mark.asyncio
    async def test_load_from_store_only_fetches_keys(self, tmp_path):
        locator = await known_locator(MemoryBlobStore(), tmp_path, {"c1/1": b"a", "c2/2": b"b"})

        assert locator.is_initialized is True
        assert locator.get_media_count() == 2
        assert locator.has_media("c1", "1") is True
        assert locator.get_media_blob("c1", "1") is None

    @pytest.mark.asyncio
    async def test_load_files_persists_with_progress(self, tmp_path):
        store = MemoryBlobStore()
        locator = MediaLocator(store, cache_dir=tmp_path, batch_size=1)
        seen: list[int] = []

        count = await locator.load_files({"c1/1": b"a", "c1/2": b"b"}, on_progress=seen.append)

        assert count == 2
        assert seen == [75, 100]
        assert await store.load_media_keys() == {"c1/1", "c1/2"}

    @pytest.mark.asyncio
    async def test_load_files_without_persist(self, tmp_path):
        store = MemoryBlobStore()
        locator = MediaLocator(store, cache_dir=tmp_path)
        await locator.load_files({"c1/1": b"a"}, persist=False)

        assert locator.has_media("c1", "1")
        assert await store.load_media_keys() == set()

    @pytest.mark.asyncio
    async def test_clear_releases_local_files(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path / "cache")
        await locator.load_files({"c1/1": b"a", "c1/2": b"b"}, persist=False)
        paths = [media.path for media in locator._files.values()]
        assert all(path.exists() for path in paths)

        locator.clear()

        assert not any(path.exists() for path in paths)
        assert list((tmp_path / "cache").iterdir()) == []
        assert locator.get_media_url("c1", "1") is None

    @pytest.mark.asyncio
    async def test_reload_replaces_previous_set(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path)
        await locator.load_files({"c1/1": b"a"}, persist=False)
        await locator.load_files({"c2/1": b"b"}, persist=False)

        assert locator.has_media("c1", "1") is False
        assert locator.has_media("c2", "1") is True

    def test_default_store_is_in_memory(self):
        assert isinstance(MediaLocator().store, MemoryBlobStore)

    @pytest.mark.asyncio
    async def test_file_names_do_not_leak_keys(self, tmp_path):
        locator = MediaLocator(cache_dir=tmp_path)
        await locator.load_files({"c1/../../etc/passwd": b"x"}, persist=False)
        path = next(iter(locator._files.values())).path
        assert Path(path).parent.parent == tmp_path

"""Unit tests for LIME Configuration System.

Tests cover loading configuration from file, handling missing/invalid files,
range validation, singleton behavior and save functionality.
"""

import json

import pytest
from pydantic import ValidationError

from lime.config import (
    CONFIG_PATH,
    CONFIG_VERSION,
    LimeConfig,
    QueryConfig,
    StorageConfig,
    get_config,
    load_config,
    reset_config,
    save_config,
)


class TestLimeConfig:
    """Tests for LimeConfig model."""

    def test_default_values(self):
        config = LimeConfig()
        assert config.config_version == CONFIG_VERSION
        assert config.storage.path.name == "storage.db"
        assert config.storage.batch_size == 50
        assert config.media.cache_dir is None
        assert config.query.page_size == 100
        assert config.query.search_limit == 50
        assert config.export.self_name == "自分"
        assert config.export.timezone is None

    def test_default_paths_live_under_home(self):
        assert CONFIG_PATH.parent.name == ".lime"
        assert StorageConfig().path.parent == CONFIG_PATH.parent

    def test_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            QueryConfig(page_size=0)
        with pytest.raises(ValidationError):
            StorageConfig(batch_size=0)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "nonexistent" / "config.json")
        assert config == LimeConfig()

    def test_loads_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"query": {"page_size": 25}, "export": {"self_name": "me"}}))

        config = load_config(path)

        assert config.query.page_size == 25
        assert config.export.self_name == "me"
        assert config.query.search_limit == 50

    def test_invalid_json_returns_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{ not json")
        assert load_config(path) == LimeConfig()

    def test_invalid_values_return_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"query": {"page_size": -1}}))
        assert load_config(path).query.page_size == 100


class TestSaveConfig:
    """Tests for save_config function."""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = LimeConfig()
        config.export.timezone = "Asia/Tokyo"
        config.storage.path = tmp_path / "s.db"

        assert save_config(config, path) is True

        loaded = load_config(path)
        assert loaded.export.timezone == "Asia/Tokyo"
        assert loaded.storage.path == tmp_path / "s.db"

    def test_keeps_non_ascii(self, tmp_path):
        path = tmp_path / "config.json"
        save_config(LimeConfig(), path)
        assert "自分" in path.read_text(encoding="utf-8")

    def test_file_permissions(self, tmp_path):
        path = tmp_path / "config.json"
        save_config(LimeConfig(), path)
        assert path.stat().st_mode & 0o777 == 0o600

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        assert save_config(LimeConfig(), blocker / "config.json") is False


class TestSingleton:
    """Tests for get_config/reset_config."""

    def test_same_instance(self, monkeypatch, tmp_path):
        monkeypatch.setattr("lime.config.CONFIG_PATH", tmp_path / "config.json")
        assert get_config() is get_config()

    def test_reset_creates_new_instance(self, monkeypatch, tmp_path):
        monkeypatch.setattr("lime.config.CONFIG_PATH", tmp_path / "config.json")
        first = get_config()
        reset_config()
        assert get_config() is not first

    def test_reads_config_path(self, monkeypatch, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"query": {"search_limit": 7}}))
        monkeypatch.setattr("lime.config.CONFIG_PATH", path)

        assert get_config().query.search_limit == 7

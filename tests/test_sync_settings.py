"""Tests for settings and project configuration loading."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from wewe_sync import paths
from wewe_sync.config import DEFAULT_PLATFORM_URL, SyncSettings, get_config


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("WEWE_DATA_DIR", str(tmp_path))
    for name in ("WEWE_PLATFORM_URL", "WEWE_RETENTION_DAYS", "WEWE_UPDATE_DELAY", "WEWE_NOTES_DIR", "WEWE_SYNC_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield tmp_path
    get_config.cache_clear()


class TestSyncSettings:
    """Tests for SyncSettings validation."""

    def test_defaults(self):
        settings = SyncSettings()

        assert settings.platform_url == DEFAULT_PLATFORM_URL
        assert settings.retention_days == 30
        assert settings.retry_max_attempts == 3
        assert settings.blacklist_duration == timedelta(hours=24)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"retention_days": 0},
            {"max_pages": 0},
            {"retry_max_attempts": 0},
            {"update_delay_seconds": -1},
            {"sync_interval_minutes": 0},
            {"platform_url": ""},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            SyncSettings(**overrides)

    def test_from_mapping_ignores_unknown_keys(self):
        settings = SyncSettings.from_mapping(
            {"retention_days": 7, "title_exclude_patterns": ["^AD"], "colour": "blue"}
        )

        assert settings.retention_days == 7
        assert settings.title_exclude_patterns == ("^AD",)


class TestProjectConfig:
    """Tests for ProjectConfig."""

    def test_missing_file_uses_defaults(self, data_dir):
        settings = get_config().settings()

        assert settings == SyncSettings()

    def test_reads_config_file(self, data_dir):
        (data_dir / "config.json").write_text(
            json.dumps({"platform_url": "https://rss.example", "max_pages": 2, "log_level": "DEBUG"}),
            encoding="utf-8",
        )

        config = get_config()

        assert config.platform_url == "https://rss.example"
        assert config.log_level == "DEBUG"
        assert config.settings().max_pages == 2

    def test_environment_overrides_file(self, data_dir, monkeypatch):
        (data_dir / "config.json").write_text(json.dumps({"retention_days": 10}), encoding="utf-8")
        monkeypatch.setenv("WEWE_RETENTION_DAYS", "14")
        monkeypatch.setenv("WEWE_UPDATE_DELAY", "2.5")
        monkeypatch.setenv("WEWE_SYNC_INTERVAL", "15")

        settings = get_config().settings()

        assert settings.retention_days == 14
        assert settings.update_delay_seconds == 2.5
        assert settings.sync_interval_minutes == 15.0

    def test_explicit_overrides_win(self, data_dir):
        settings = get_config().settings(retention_days=3, max_pages=None)

        assert settings.retention_days == 3
        assert settings.max_pages == SyncSettings().max_pages

    def test_corrupted_file_falls_back_to_defaults(self, data_dir):
        (data_dir / "config.json").write_text("{not json", encoding="utf-8")

        assert get_config().settings() == SyncSettings()


def test_paths_follow_data_dir(data_dir, monkeypatch):
    assert paths.get_store_root() == data_dir / "store"
    assert paths.get_notes_root() == data_dir / "notes"

    monkeypatch.setenv("WEWE_NOTES_DIR", str(data_dir / "vault"))
    assert paths.get_notes_root() == (data_dir / "vault").resolve()

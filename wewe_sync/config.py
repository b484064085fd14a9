"""Project configuration management."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from functools import lru_cache
from typing import Any, Optional

from wewe_sync import paths

logger = logging.getLogger(__name__)

DEFAULT_PLATFORM_URL = "https://weread.111965.xyz"

DEFAULT_NOTE_TEMPLATE = """---
title: {{title}}
url: {{url}}
published: {{publishedAt}}
feed: {{feedName}}
tags: [{{tags}}]
---

# {{title}}

> Published: {{publishedAt}}
> Source: [{{feedName}}]({{url}})

{{content}}
"""


@dataclass(frozen=True)
class SyncSettings:
    """Settings consumed by the sync services.

    Attributes:
        platform_url: Base URL of the WeWe RSS platform API.
        retention_days: Articles published before ``now - retention_days``
            are neither stored nor kept.
        update_delay_seconds: Pause between page and feed requests. This is
            the only rate limiting applied to the platform.
        max_pages: Pages fetched for a historical (first) fetch of a feed.
        refresh_pages: Pages fetched per feed during a regular refresh.
        stale_threshold_hours: Feeds synced more recently than this are
            skipped by a stale refresh.
        blacklist_hours: How long a rate-limited account is suspended.
        retry_max_attempts: Attempts per API call for transient failures.
        retry_base_delay: First backoff delay, doubled on each attempt.
        request_timeout: Timeout in seconds for a single attempt.
        login_poll_interval: Seconds between login status polls.
        login_max_errors: Consecutive transient poll errors before giving up.
        login_expiry_seconds: Lifetime of a login prompt.
        notes_folder: Folder (relative to the notes root) for generated notes.
        note_template: Template used to render notes.
        add_tags: Whether rendered notes carry tags derived from the feed.
        title_include_patterns: Regexes; when set, only matching titles are kept.
        title_exclude_patterns: Regexes; matching titles are dropped.
        fetch_content: Download article pages before creating notes.
        sync_interval_minutes: Minutes between cycles of a scheduled sync.
    """

    platform_url: str = DEFAULT_PLATFORM_URL
    retention_days: int = 30
    update_delay_seconds: float = 60.0
    max_pages: int = 5
    refresh_pages: int = 1
    stale_threshold_hours: float = 1.0
    blacklist_hours: float = 24.0
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 15.0
    login_poll_interval: float = 2.0
    login_max_errors: int = 3
    login_expiry_seconds: float = 300.0
    notes_folder: str = "WeWe RSS"
    note_template: str = DEFAULT_NOTE_TEMPLATE
    add_tags: bool = True
    title_include_patterns: tuple[str, ...] = field(default_factory=tuple)
    title_exclude_patterns: tuple[str, ...] = field(default_factory=tuple)
    fetch_content: bool = True
    sync_interval_minutes: float = 60.0

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.retention_days < 1:
            raise ValueError(f"retention_days must be positive, got {self.retention_days}")
        if self.max_pages < 1 or self.refresh_pages < 1:
            raise ValueError("max_pages and refresh_pages must be at least 1")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        if self.update_delay_seconds < 0 or self.retry_base_delay < 0:
            raise ValueError("Delays must not be negative")
        if not self.platform_url:
            raise ValueError("platform_url must be set")
        if self.sync_interval_minutes <= 0:
            raise ValueError(f"sync_interval_minutes must be positive, got {self.sync_interval_minutes}")

    @property
    def blacklist_duration(self) -> timedelta:
        return timedelta(hours=self.blacklist_hours)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "SyncSettings":
        """Build settings from a raw mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown setting: %s", key)
                continue
            if key in ("title_include_patterns", "title_exclude_patterns"):
                value = tuple(value or ())
            values[key] = value
        return cls(**values)


# Environment variables that override file-based settings.
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "WEWE_PLATFORM_URL": ("platform_url", str),
    "WEWE_RETENTION_DAYS": ("retention_days", int),
    "WEWE_UPDATE_DELAY": ("update_delay_seconds", float),
    "WEWE_MAX_PAGES": ("max_pages", int),
    "WEWE_BLACKLIST_HOURS": ("blacklist_hours", float),
    "WEWE_SYNC_INTERVAL": ("sync_interval_minutes", float),
}


class ProjectConfig:
    """Access to project configuration values."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return

        config_path = paths.get_config_file()
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    self._data = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Could not read %s, using defaults: %s", config_path, exc)
                self._data = {}

        for env_name, (key, cast) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw:
                self._data[key] = cast(raw)

        self._loaded = True

    @property
    def platform_url(self) -> str:
        """Get the configured platform URL."""
        self._ensure_loaded()
        return self._data.get("platform_url", DEFAULT_PLATFORM_URL)

    @property
    def log_level(self) -> Optional[str]:
        self._ensure_loaded()
        return self._data.get("log_level") or os.environ.get("WEWE_LOG_LEVEL")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw configuration value."""
        self._ensure_loaded()
        return self._data.get(key, default)

    def settings(self, **overrides: Any) -> SyncSettings:
        """Build :class:`SyncSettings` from the loaded values plus overrides."""
        self._ensure_loaded()
        data = {k: v for k, v in self._data.items() if k != "log_level"}
        settings = SyncSettings.from_mapping(data)
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(settings, **overrides) if overrides else settings


@lru_cache(maxsize=1)
def get_config() -> ProjectConfig:
    """Get the singleton configuration instance."""
    return ProjectConfig()

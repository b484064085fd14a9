"""Wiring of stores, client and services from settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from wewe_sync import paths
from wewe_sync.config import SyncSettings, get_config
from wewe_sync.integrations.wewe import RetryPolicy, WeReadClient
from wewe_sync.notes.writer import NoteWriter
from wewe_sync.parsing.content import ContentFetcher
from wewe_sync.storage.registry import AccountStore, ArticleStore, FeedStore
from wewe_sync.sync import AccountManager, FeedService, SyncRunner


@dataclass
class SyncContext:
    settings: SyncSettings
    client: WeReadClient
    accounts: AccountManager
    feeds: FeedService
    runner: SyncRunner


def build_context(
    settings: SyncSettings | None = None,
    store_root: Path | None = None,
    notes_root: Path | None = None,
) -> SyncContext:
    """Create the service graph used by the CLI.

    Args:
        settings: Settings to use; loaded from the project config if None.
        store_root: Directory for the JSON stores.
        notes_root: Directory notes are written under.
    """
    settings = settings or get_config().settings()
    store_root = store_root or paths.get_store_root()
    notes_root = notes_root or paths.get_notes_root()

    client = WeReadClient(
        settings.platform_url,
        retry_policy=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            timeout=settings.request_timeout,
        ),
    )
    account_store = AccountStore(store_root)
    feed_store = FeedStore(store_root)
    article_store = ArticleStore(store_root)

    accounts = AccountManager(account_store, client, settings)
    feeds = FeedService(feed_store, article_store, accounts, client, settings)
    runner = SyncRunner(
        feeds,
        article_store,
        NoteWriter(notes_root, settings),
        content_fetcher=ContentFetcher() if settings.fetch_content else None,
    )
    return SyncContext(settings=settings, client=client, accounts=accounts, feeds=feeds, runner=runner)

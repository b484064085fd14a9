"""Sync cycle: refresh feeds, write notes, prune old articles.

A cycle runs three phases in order:

1. Refresh: fetch new articles for all feeds, the stale ones, or an
   explicit list.
2. Notes: fill in article content where possible and write a note for every
   article not yet linked to one.
3. Prune: delete articles older than the retention window together with
   their notes.

Failures are isolated per feed and per article. A failed prune degrades to
zero counts instead of failing the cycle.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from wewe_sync.notes.writer import NoteBatchResult, NoteWriter
from wewe_sync.parsing.content import ContentFetcher, ContentFetchError
from wewe_sync.storage.models import Article, utcnow
from wewe_sync.storage.registry import ArticleStore

from .errors import SyncInProgressError
from .feeds import FeedService, RefreshResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncOptions:
    """What a sync cycle should do.

    Attributes:
        mode: ``"all"`` refreshes every feed, ``"stale"`` only feeds due for
            a sync, ``"feeds"`` only ``feed_ids``.
        feed_ids: Feeds to refresh in ``"feeds"`` mode.
        create_notes: Write notes for unsynced articles.
        prune: Apply the retention window after refreshing.
    """

    mode: str = "all"
    feed_ids: tuple[int, ...] = ()
    create_notes: bool = True
    prune: bool = True

    def __post_init__(self) -> None:
        if self.mode not in ("all", "stale", "feeds"):
            raise ValueError(f"Unknown sync mode: {self.mode}")
        if self.mode == "feeds" and not self.feed_ids:
            raise ValueError("feed_ids is required in 'feeds' mode")


@dataclass(frozen=True)
class PruneResult:
    articles_deleted: int = 0
    notes_deleted: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"articles_deleted": self.articles_deleted, "notes_deleted": self.notes_deleted}


@dataclass
class SyncResult:
    """Result of one sync cycle."""

    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    mode: str = "all"
    refresh: RefreshResult = field(default_factory=RefreshResult)
    notes: NoteBatchResult = field(default_factory=NoteBatchResult)
    prune: PruneResult = field(default_factory=PruneResult)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def has_errors(self) -> bool:
        return self.refresh.failed > 0 or self.notes.failed > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "mode": self.mode,
            "refresh": self.refresh.to_dict(),
            "notes": self.notes.to_dict(),
            "prune": self.prune.to_dict(),
        }

    def summary(self) -> str:
        lines = [
            f"Sync completed in {self.duration_seconds:.1f}s (mode: {self.mode})",
            f"  Feeds: {self.refresh.successful}/{self.refresh.total} refreshed",
            f"    - Failed: {self.refresh.failed}",
            f"    - New articles: {self.refresh.articles_downloaded}",
            f"  Notes: {self.notes.created} created",
            f"    - Skipped: {self.notes.skipped}",
            f"    - Failed: {self.notes.failed}",
            f"  Pruned: {self.prune.articles_deleted} articles, {self.prune.notes_deleted} notes",
        ]
        return "\n".join(lines)


class SyncRunner:
    """Runs sync cycles. Only one cycle runs at a time."""

    def __init__(
        self,
        feed_service: FeedService,
        articles: ArticleStore,
        notes: NoteWriter,
        content_fetcher: ContentFetcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.feed_service = feed_service
        self.articles = articles
        self.notes = notes
        self.content_fetcher = content_fetcher
        self.settings = feed_service.settings
        self._clock = clock
        self._lock = threading.Lock()
        self._last_sync_at: datetime | None = None

    @property
    def last_sync_at(self) -> datetime | None:
        return self._last_sync_at

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def run_cycle(
        self,
        retention_days: int | None = None,
        options: SyncOptions | None = None,
    ) -> SyncResult:
        """Run one sync cycle.

        Raises:
            SyncInProgressError: Another cycle is running.
        """
        options = options or SyncOptions()
        days = self.settings.retention_days if retention_days is None else retention_days

        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError()
        try:
            result = SyncResult(started_at=self._clock(), mode=options.mode)
            logger.info("Starting sync cycle (mode=%s, retention=%d days)", options.mode, days)

            result.refresh = self._refresh(options, days)
            if options.create_notes:
                result.notes = self._create_notes()
            if options.prune:
                result.prune = self.prune(days)

            result.completed_at = self._clock()
            self._last_sync_at = result.completed_at
            logger.info("Sync cycle complete:\n%s", result.summary())
            return result
        finally:
            self._lock.release()

    def _refresh(self, options: SyncOptions, retention_days: int) -> RefreshResult:
        if options.mode == "stale":
            return self.feed_service.refresh_stale(retention_days=retention_days)
        if options.mode == "feeds":
            return self.feed_service.refresh_feeds(options.feed_ids, retention_days)
        return self.feed_service.refresh_all(retention_days)

    def create_notes_only(self) -> NoteBatchResult:
        """Write notes for unsynced articles without refreshing or pruning."""
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError()
        try:
            return self._create_notes()
        finally:
            self._lock.release()

    def _create_notes(self) -> NoteBatchResult:
        pending = self.articles.list_unsynced()
        if not pending:
            logger.info("No unsynced articles")
            return NoteBatchResult()

        if self.settings.fetch_content and self.content_fetcher is not None:
            pending = [self._fill_content(article) for article in pending]

        feeds = {feed.id: feed for feed in self.feed_service.list_feeds()}
        batch = self.notes.create_batch(pending, feeds)

        for article_id, ref in batch.refs.items():
            try:
                self.articles.mark_synced(article_id, ref)
            except KeyError as exc:
                logger.error("Could not link note %s to article %d: %s", ref, article_id, exc)
                batch.failed += 1

        logger.info(
            "Notes: %d created, %d skipped, %d failed",
            batch.created,
            batch.skipped,
            batch.failed,
        )
        return batch

    def _fill_content(self, article: Article) -> Article:
        if article.content:
            return article
        try:
            parsed = self.content_fetcher.fetch(article.source_url)
            return self.articles.update_content(article.id, parsed.markdown, parsed.clean_html)
        except ContentFetchError as exc:
            logger.warning("Could not fetch content for %s: %s", article.source_url, exc)
        except Exception as exc:
            logger.error("Failed to fill content for article %d: %s", article.id, exc)
        return article

    def prune(self, retention_days: int | None = None) -> PruneResult:
        """Delete articles outside the retention window and their notes.

        Any failure is logged and reported as zero deletions.
        """
        days = self.settings.retention_days if retention_days is None else retention_days
        cutoff = self._clock() - timedelta(days=days)
        try:
            deleted_ids = self.articles.delete_older_than(cutoff)
            notes_deleted = self.notes.delete_by_article_ids(deleted_ids)
        except Exception as exc:
            logger.error("Retention cleanup failed: %s", exc)
            return PruneResult()

        if deleted_ids:
            logger.info("Pruned %d articles and %d notes", len(deleted_ids), notes_deleted)
        return PruneResult(articles_deleted=len(deleted_ids), notes_deleted=notes_deleted)

    def remove_feed(self, feed_id: int) -> PruneResult:
        """Remove a feed, its articles and their notes."""
        article_ids = self.feed_service.remove_feed(feed_id)
        try:
            notes_deleted = self.notes.delete_by_article_ids(article_ids)
        except (OSError, ValueError) as exc:
            logger.error("Failed to delete notes of feed %d: %s", feed_id, exc)
            notes_deleted = 0
        return PruneResult(articles_deleted=len(article_ids), notes_deleted=notes_deleted)

    def stats(self) -> dict[str, Any]:
        return {
            "accounts": self.feed_service.accounts.stats(),
            "feeds": len(self.feed_service.list_feeds()),
            "articles": self.articles.count(),
            "unsynced_articles": self.articles.count_unsynced(),
            "last_sync_at": self._last_sync_at.isoformat() if self._last_sync_at else None,
            "syncing": self.is_syncing,
        }

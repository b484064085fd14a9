"""Feed subscription and paged article fetching."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Sequence

from wewe_sync.config import SyncSettings
from wewe_sync.integrations.wewe import MpArticle, WeReadApiError, WeReadClient
from wewe_sync.storage.models import Account, AccountStatus, ArticleDraft, Feed, utcnow
from wewe_sync.storage.registry import ArticleStore, FeedStore

from .accounts import AccountManager
from .errors import FeedNotFoundError, NoCapacityError, SyncError

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Tally of a refresh over several feeds.

    Attributes:
        total: Feeds attempted.
        successful: Feeds fetched without error.
        failed: Feeds whose fetch raised.
        articles_downloaded: New articles stored across all feeds.
        errors: One entry per failed feed with its id, title and message.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    articles_downloaded: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "articles_downloaded": self.articles_downloaded,
            "errors": list(self.errors),
        }


def _compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as exc:
            logger.warning("Ignoring invalid title pattern %r: %s", pattern, exc)
    return compiled


class FeedService:
    """Subscribes to public accounts and pulls their articles into the store."""

    def __init__(
        self,
        feeds: FeedStore,
        articles: ArticleStore,
        accounts: AccountManager,
        client: WeReadClient,
        settings: SyncSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.feeds = feeds
        self.articles = articles
        self.accounts = accounts
        self.client = client
        self.settings = settings or SyncSettings()
        self._clock = clock
        self._include = _compile_patterns(self.settings.title_include_patterns)
        self._exclude = _compile_patterns(self.settings.title_exclude_patterns)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, share_link: str, *, fetch_history: bool = True) -> Feed:
        """Subscribe to the public account behind a share link.

        Subscribing twice to the same account returns the existing feed
        unchanged. A newly created feed gets a best-effort historical fetch.

        Raises:
            NoCapacityError: No account can make the call.
            WeReadApiError: The link could not be resolved.
            SyncError: The link resolved to no public account.
        """
        account = self.accounts.select_usable_account()
        if account is None:
            raise NoCapacityError()

        try:
            infos = self.client.get_mp_info(share_link, account.credential)
        except WeReadApiError as exc:
            self.accounts.report_outcome(account.id, exc)
            raise
        if not infos:
            raise SyncError(f"No public account found for link: {share_link}")

        info = infos[0]
        existing = self.feeds.get_by_external_id(info.id)
        if existing is not None:
            logger.info("Already subscribed to %s (feed %d)", existing.title, existing.id)
            return existing

        feed = self.feeds.create_or_get(
            external_feed_id=info.id,
            title=info.name,
            description=info.intro,
            owner_account_id=account.id,
            now=self._clock(),
        )
        logger.info("Subscribed to %s (feed %d)", feed.title, feed.id)

        if fetch_history:
            try:
                self.fetch_paged(feed, self.settings.max_pages, self.settings.retention_days)
            except Exception as exc:
                logger.warning("Initial fetch failed for %s: %s", feed.title, exc)
            feed = self.feeds.get(feed.id) or feed
        return feed

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch_paged(self, feed: Feed, max_pages: int, retention_days: int) -> int:
        """Fetch up to ``max_pages`` pages of a feed and store new articles.

        Items published before ``now - retention_days`` are dropped. A page
        holding any item outside the window is the last page requested.
        ``last_sync_at`` is written however the fetch ends.

        Returns:
            Number of newly stored articles.

        Raises:
            NoCapacityError: No account can make the call.
            WeReadApiError: A page request failed; the failure has already
                been reported against the account that made it.
        """
        cutoff = self._clock() - timedelta(days=retention_days)
        inserted = 0
        delay = self.settings.update_delay_seconds

        try:
            for page in range(1, max_pages + 1):
                account = self._account_for(feed)
                try:
                    items = self.client.get_mp_articles(
                        feed.external_feed_id,
                        account.credential,
                        page=page,
                    )
                except WeReadApiError as exc:
                    self.accounts.report_outcome(account.id, exc)
                    raise

                in_window = [item for item in items if item.published_at >= cutoff]
                if not in_window:
                    logger.info("No articles within %d days on page %d of %s; stopping", retention_days, page, feed.title)
                    break

                drafts = [self._to_draft(feed, item) for item in in_window if self._title_allowed(item.title)]
                inserted += self.articles.create_batch(drafts, now=self._clock())

                # Pages are newest first: once a page crosses the cutoff, later pages are all older.
                if len(in_window) < len(items):
                    logger.info("Reached the retention cutoff on page %d of %s; stopping", page, feed.title)
                    break

                if page < max_pages and delay > 0:
                    time.sleep(delay)
        finally:
            self.feeds.update_last_sync(feed.id, self._clock())

        logger.info("Fetched %d new articles for %s", inserted, feed.title)
        return inserted

    def _account_for(self, feed: Feed) -> Account:
        owner = self.accounts.store.get(feed.owner_account_id)
        if owner is not None and owner.status is AccountStatus.ACTIVE:
            return owner

        account = self.accounts.select_usable_account()
        if account is None:
            raise NoCapacityError()
        if owner is None or owner.status in (AccountStatus.EXPIRED, AccountStatus.DISABLED):
            self.feeds.update_owner(feed.id, account.id)
            feed.owner_account_id = account.id
            logger.info("Feed %s reassigned to account %s", feed.title, account.display_name)
        return account

    def _title_allowed(self, title: str) -> bool:
        if self._include and not any(p.search(title) for p in self._include):
            return False
        return not any(p.search(title) for p in self._exclude)

    @staticmethod
    def _to_draft(feed: Feed, item: MpArticle) -> ArticleDraft:
        return ArticleDraft(
            feed_id=feed.id,
            title=item.title,
            source_url=item.source_url,
            published_at=item.published_at,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_all(self, retention_days: int | None = None) -> RefreshResult:
        """Refresh every feed."""
        return self._refresh(self.feeds.list_all(), retention_days)

    def refresh_stale(
        self,
        stale_threshold_hours: float | None = None,
        retention_days: int | None = None,
    ) -> RefreshResult:
        """Refresh feeds never synced or synced longer ago than the threshold."""
        hours = self.settings.stale_threshold_hours if stale_threshold_hours is None else stale_threshold_hours
        feeds = self.feeds.find_needing_sync(timedelta(hours=hours), self._clock())
        logger.info("%d feeds need sync", len(feeds))
        return self._refresh(feeds, retention_days)

    def refresh_feeds(self, feed_ids: Sequence[int], retention_days: int | None = None) -> RefreshResult:
        feeds = []
        for feed_id in feed_ids:
            feed = self.feeds.get(feed_id)
            if feed is None:
                raise FeedNotFoundError(feed_id)
            feeds.append(feed)
        return self._refresh(feeds, retention_days)

    def _refresh(self, feeds: List[Feed], retention_days: int | None) -> RefreshResult:
        days = self.settings.retention_days if retention_days is None else retention_days
        result = RefreshResult(total=len(feeds))

        for index, feed in enumerate(feeds):
            try:
                result.articles_downloaded += self.fetch_paged(feed, self.settings.refresh_pages, days)
                result.successful += 1
            except Exception as exc:
                result.failed += 1
                result.errors.append({"feed_id": feed.id, "title": feed.title, "error": str(exc)})
                logger.error("Failed to refresh %s: %s", feed.title, exc)

            if index < len(feeds) - 1 and self.settings.update_delay_seconds > 0:
                time.sleep(self.settings.update_delay_seconds)

        logger.info(
            "Refresh complete: %d/%d feeds, %d new articles",
            result.successful,
            result.total,
            result.articles_downloaded,
        )
        return result

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def get_feed(self, feed_id: int) -> Feed:
        feed = self.feeds.get(feed_id)
        if feed is None:
            raise FeedNotFoundError(feed_id)
        return feed

    def list_feeds(self) -> List[Feed]:
        return self.feeds.list_all()

    def remove_feed(self, feed_id: int) -> list[int]:
        """Delete a feed and its articles. Returns the deleted article ids."""
        feed = self.get_feed(feed_id)
        article_ids = self.articles.delete_by_feed(feed.id)
        self.feeds.delete(feed.id)
        logger.info("Removed feed %s with %d articles", feed.title, len(article_ids))
        return article_ids

    def update_metadata(self, feed_id: int, title: str | None = None, description: str | None = None) -> Feed:
        feed = self.get_feed(feed_id)
        return self.feeds.update_metadata(
            feed.id,
            title if title is not None else feed.title,
            description if description is not None else feed.description,
        )

    def feed_stats(self) -> list[dict[str, Any]]:
        counts = self.articles.count_by_feed()
        return [
            {
                "id": feed.id,
                "title": feed.title,
                "external_feed_id": feed.external_feed_id,
                "owner_account_id": feed.owner_account_id,
                "articles": counts.get(feed.id, 0),
                "last_sync_at": feed.last_sync_at.isoformat() if feed.last_sync_at else None,
            }
            for feed in self.feeds.list_all()
        ]

"""JSON-backed stores for accounts, feeds and articles.

Each store keeps one JSON document under the store root. Writes go through a
temporary file followed by an atomic replace, so a crash never leaves a
half-written document behind.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, List, TypeVar

from wewe_sync import paths
from wewe_sync.integrations.wewe.models import Credential

from .models import Account, AccountStatus, Article, ArticleDraft, Feed, utcnow

logger = logging.getLogger(__name__)

_DOCUMENT_VERSION = 1

RecordT = TypeVar("RecordT", Account, Feed, Article)


class _JsonTable(Generic[RecordT]):
    """A table of records persisted as a single JSON document."""

    filename: str = ""

    def __init__(
        self,
        root: Path | None,
        loader: Callable[[dict[str, Any]], RecordT],
    ) -> None:
        self.root = root or paths.get_store_root()
        self.root = self.root if self.root.is_absolute() else self.root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._path = self.root / self.filename
        self._loader = loader

    @property
    def path(self) -> Path:
        return self._path

    def _load_document(self) -> dict[str, Any]:
        if not self._path.exists():
            return {"version": _DOCUMENT_VERSION, "next_id": 1, "records": []}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Store file {self._path} is corrupted: {exc}") from exc

    def _load(self) -> tuple[dict[int, RecordT], int]:
        data = self._load_document()
        records: dict[int, RecordT] = {}
        for payload in data.get("records", []):
            record = self._loader(payload)
            records[record.id] = record
        next_id = int(data.get("next_id") or (max(records, default=0) + 1))
        return records, next_id

    def _save(self, records: dict[int, RecordT], next_id: int) -> None:
        data = {
            "version": _DOCUMENT_VERSION,
            "updated_at": utcnow().isoformat(),
            "next_id": next_id,
            "records": [records[key].to_dict() for key in sorted(records)],
        }
        content = json.dumps(data, indent=2, ensure_ascii=False)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, record_id: int) -> RecordT | None:
        records, _ = self._load()
        return records.get(record_id)

    def list_all(self) -> List[RecordT]:
        records, _ = self._load()
        return [records[key] for key in sorted(records)]

    def count(self) -> int:
        records, _ = self._load()
        return len(records)

    def delete(self, record_id: int) -> bool:
        """Delete a record. Returns True if deleted, False if not found."""
        records, next_id = self._load()
        if record_id not in records:
            return False
        del records[record_id]
        self._save(records, next_id)
        return True


# =============================================================================
# Accounts
# =============================================================================


class AccountStore(_JsonTable[Account]):
    """Stores platform accounts and their lifecycle state."""

    filename = "accounts.json"

    def __init__(self, root: Path | None = None) -> None:
        super().__init__(root, Account.from_dict)

    def find_by_external_id(self, external_id: str) -> Account | None:
        for account in self.list_all():
            if account.external_id == external_id:
                return account
        return None

    def create_or_get(
        self,
        credential: Credential,
        display_name: str,
        now: datetime | None = None,
    ) -> Account:
        """Create an active account, or refresh the one with the same identity.

        A repeated sign-in of a known identity re-issues its token and makes
        it active again instead of adding a second row.
        """
        now = now or utcnow()
        records, next_id = self._load()
        for account in records.values():
            if account.external_id == credential.external_id:
                account.credential = credential
                account.display_name = display_name or account.display_name
                account.status = AccountStatus.ACTIVE
                account.blacklisted_until = None
                account.updated_at = now
                self._save(records, next_id)
                logger.info("Account re-authenticated: %s", account.display_name)
                return account

        account = Account(
            id=next_id,
            display_name=display_name,
            credential=credential,
            status=AccountStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        records[account.id] = account
        self._save(records, next_id + 1)
        logger.info("Account created: %s (id=%d)", account.display_name, account.id)
        return account

    def list_by_status(self, *statuses: AccountStatus) -> List[Account]:
        return [account for account in self.list_all() if account.status in statuses]

    def save(self, account: Account, now: datetime | None = None) -> Account:
        """Persist changes to an existing account."""
        if account.status is not AccountStatus.BLACKLISTED:
            account.blacklisted_until = None
        elif account.blacklisted_until is None:
            raise ValueError("A blacklisted account needs blacklisted_until")
        records, next_id = self._load()
        if account.id not in records:
            raise KeyError(f"Account {account.id} does not exist")
        account.updated_at = now or utcnow()
        records[account.id] = account
        self._save(records, next_id)
        return account

    def save_many(self, accounts: Iterable[Account], now: datetime | None = None) -> None:
        now = now or utcnow()
        records, next_id = self._load()
        for account in accounts:
            if account.id not in records:
                raise KeyError(f"Account {account.id} does not exist")
            account.updated_at = now
            records[account.id] = account
        self._save(records, next_id)

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in AccountStatus}
        for account in self.list_all():
            counts[account.status.value] += 1
        return counts


# =============================================================================
# Feeds
# =============================================================================


class FeedStore(_JsonTable[Feed]):
    """Stores subscribed feeds, unique by external feed id."""

    filename = "feeds.json"

    def __init__(self, root: Path | None = None) -> None:
        super().__init__(root, Feed.from_dict)

    def get_by_external_id(self, external_feed_id: str) -> Feed | None:
        for feed in self.list_all():
            if feed.external_feed_id == external_feed_id:
                return feed
        return None

    def create_or_get(
        self,
        external_feed_id: str,
        title: str,
        description: str,
        owner_account_id: int,
        now: datetime | None = None,
    ) -> Feed:
        """Create a feed, or return the existing one with the same external id."""
        now = now or utcnow()
        records, next_id = self._load()
        for feed in records.values():
            if feed.external_feed_id == external_feed_id:
                return feed

        feed = Feed(
            id=next_id,
            external_feed_id=external_feed_id,
            title=title,
            description=description,
            owner_account_id=owner_account_id,
            created_at=now,
            updated_at=now,
        )
        records[feed.id] = feed
        self._save(records, next_id + 1)
        logger.info("Feed created: %s (%s)", feed.title, feed.external_feed_id)
        return feed

    def find_needing_sync(
        self,
        threshold: timedelta,
        now: datetime | None = None,
    ) -> List[Feed]:
        """Feeds never synced (oldest first), then feeds synced before ``now - threshold``."""
        now = now or utcnow()
        cutoff = now - threshold
        feeds = self.list_all()
        never = sorted((f for f in feeds if f.last_sync_at is None), key=lambda f: f.created_at)
        stale = sorted(
            (f for f in feeds if f.last_sync_at is not None and f.last_sync_at <= cutoff),
            key=lambda f: f.last_sync_at,
        )
        return never + stale

    def _update(self, feed_id: int, now: datetime | None, **changes: Any) -> Feed:
        records, next_id = self._load()
        feed = records.get(feed_id)
        if feed is None:
            raise KeyError(f"Feed {feed_id} does not exist")
        for name, value in changes.items():
            setattr(feed, name, value)
        feed.updated_at = now or utcnow()
        self._save(records, next_id)
        return feed

    def update_last_sync(self, feed_id: int, when: datetime | None = None) -> Feed:
        when = when or utcnow()
        return self._update(feed_id, when, last_sync_at=when)

    def update_metadata(self, feed_id: int, title: str, description: str) -> Feed:
        return self._update(feed_id, None, title=title, description=description)

    def update_owner(self, feed_id: int, account_id: int) -> Feed:
        return self._update(feed_id, None, owner_account_id=account_id)


# =============================================================================
# Articles
# =============================================================================


class ArticleStore(_JsonTable[Article]):
    """Stores fetched articles, unique by source URL."""

    filename = "articles.json"

    def __init__(self, root: Path | None = None) -> None:
        super().__init__(root, Article.from_dict)

    def create_or_get(self, draft: ArticleDraft, now: datetime | None = None) -> Article:
        """Store an article, or return the stored row with the same URL unchanged."""
        records, next_id = self._load()
        for article in records.values():
            if article.source_url == draft.source_url:
                logger.debug("Article already exists: %s", draft.source_url)
                return article
        article = self._from_draft(draft, next_id, now or utcnow())
        records[article.id] = article
        self._save(records, next_id + 1)
        return article

    def create_batch(self, drafts: Iterable[ArticleDraft], now: datetime | None = None) -> int:
        """Store new articles, skipping URLs already present. Returns the insert count."""
        now = now or utcnow()
        records, next_id = self._load()
        known = {article.source_url for article in records.values()}
        inserted = 0
        for draft in drafts:
            if draft.source_url in known:
                continue
            article = self._from_draft(draft, next_id, now)
            records[article.id] = article
            known.add(article.source_url)
            next_id += 1
            inserted += 1
        if inserted:
            self._save(records, next_id)
            logger.info("Batch articles created: %d", inserted)
        return inserted

    @staticmethod
    def _from_draft(draft: ArticleDraft, article_id: int, now: datetime) -> Article:
        return Article(
            id=article_id,
            feed_id=draft.feed_id,
            title=draft.title,
            source_url=draft.source_url,
            published_at=draft.published_at,
            content=draft.content,
            raw_content=draft.raw_content,
            created_at=now,
        )

    def list_unsynced(self, limit: int | None = None) -> List[Article]:
        articles = sorted(
            (a for a in self.list_all() if not a.synced),
            key=lambda a: a.published_at,
            reverse=True,
        )
        return articles[:limit] if limit is not None else articles

    def find_published_between(self, start: datetime, end: datetime) -> List[Article]:
        """Articles with ``start <= published_at < end``, newest first."""
        return sorted(
            (a for a in self.list_all() if start <= a.published_at < end),
            key=lambda a: a.published_at,
            reverse=True,
        )

    def _update(self, article_id: int, **changes: Any) -> Article:
        records, next_id = self._load()
        article = records.get(article_id)
        if article is None:
            raise KeyError(f"Article {article_id} does not exist")
        for name, value in changes.items():
            setattr(article, name, value)
        self._save(records, next_id)
        return article

    def mark_synced(self, article_id: int, artifact_ref: str) -> Article:
        return self._update(article_id, synced=True, artifact_ref=artifact_ref)

    def clear_artifact_ref(self, article_id: int) -> Article:
        return self._update(article_id, synced=False, artifact_ref=None)

    def update_content(self, article_id: int, content: str, raw_content: str) -> Article:
        return self._update(article_id, content=content, raw_content=raw_content)

    def _delete_where(self, predicate: Callable[[Article], bool]) -> List[int]:
        records, next_id = self._load()
        deleted = [key for key, article in records.items() if predicate(article)]
        if deleted:
            for key in deleted:
                del records[key]
            self._save(records, next_id)
        return sorted(deleted)

    def delete_by_feed(self, feed_id: int) -> List[int]:
        """Delete a feed's articles and return their ids."""
        return self._delete_where(lambda a: a.feed_id == feed_id)

    def delete_older_than(self, cutoff: datetime) -> List[int]:
        """Delete articles published before ``cutoff`` and return their ids."""
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
        deleted = self._delete_where(lambda a: a.published_at < cutoff)
        if deleted:
            logger.info("Deleted %d articles published before %s", len(deleted), cutoff.isoformat())
        return deleted

    def count_by_feed(self) -> dict[int, int]:
        counts: dict[int, int] = {}
        for article in self.list_all():
            counts[article.feed_id] = counts.get(article.feed_id, 0) + 1
        return counts

    def count_unsynced(self) -> int:
        return sum(1 for a in self.list_all() if not a.synced)

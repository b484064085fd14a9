"""Unit tests for the JSON-backed account, feed and article stores."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from wewe_sync.integrations.wewe import Credential
from wewe_sync.storage.models import AccountStatus, ArticleDraft
from wewe_sync.storage.registry import AccountStore, ArticleStore, FeedStore

NOW = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


def _draft(url: str, days_ago: float = 0, feed_id: int = 1) -> ArticleDraft:
    return ArticleDraft(
        feed_id=feed_id,
        title=f"Title {url}",
        source_url=url,
        published_at=NOW - timedelta(days=days_ago),
    )


# =============================================================================
# Account Store
# =============================================================================


class TestAccountStore:
    """Tests for AccountStore."""

    def test_create_assigns_ids(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        first = store.create_or_get(Credential("vid-1", "t1"), "One", now=NOW)
        second = store.create_or_get(Credential("vid-2", "t2"), "Two", now=NOW)

        assert (first.id, second.id) == (1, 2)
        assert first.status is AccountStatus.ACTIVE
        assert store.count() == 2

    def test_create_or_get_is_keyed_by_external_id(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        original = store.create_or_get(Credential("vid-1", "old"), "Reader", now=NOW)
        original.status = AccountStatus.EXPIRED
        store.save(original)

        again = store.create_or_get(Credential("vid-1", "new"), "Reader", now=NOW)

        assert again.id == original.id
        assert again.credential.token == "new"
        assert again.status is AccountStatus.ACTIVE
        assert store.count() == 1

    def test_save_requires_blacklist_deadline(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        account = store.create_or_get(Credential("vid-1", "t"), "Reader", now=NOW)
        account.status = AccountStatus.BLACKLISTED

        with pytest.raises(ValueError, match="blacklisted_until"):
            store.save(account)

    def test_save_clears_deadline_when_not_blacklisted(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        account = store.create_or_get(Credential("vid-1", "t"), "Reader", now=NOW)
        account.status = AccountStatus.DISABLED
        account.blacklisted_until = NOW

        saved = store.save(account)

        assert saved.blacklisted_until is None
        assert store.get(account.id).blacklisted_until is None

    def test_persists_across_instances(self, tmp_path: Path):
        AccountStore(tmp_path).create_or_get(Credential("vid-1", "t"), "Reader", now=NOW)

        reloaded = AccountStore(tmp_path).find_by_external_id("vid-1")

        assert reloaded is not None
        assert reloaded.credential == Credential("vid-1", "t")
        assert reloaded.created_at == NOW

    def test_legacy_token_record_loads(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        document = {
            "version": 1,
            "next_id": 2,
            "records": [
                {
                    "id": 1,
                    "display_name": "Old",
                    "credential": "legacy-token",
                    "status": "active",
                    "created_at": NOW.isoformat(),
                }
            ],
        }
        store.path.write_text(json.dumps(document), encoding="utf-8")

        account = store.get(1)

        assert account.external_id == ""
        assert account.credential.token == "legacy-token"

    def test_count_by_status(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        store.create_or_get(Credential("vid-1", "t"), "One", now=NOW)
        two = store.create_or_get(Credential("vid-2", "t"), "Two", now=NOW)
        two.status = AccountStatus.DISABLED
        store.save(two)

        counts = store.count_by_status()

        assert counts == {"active": 1, "blacklisted": 0, "expired": 0, "disabled": 1}

    def test_corrupted_file_raises(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        store.path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="corrupted"):
            store.list_all()

    def test_write_leaves_no_temp_file(self, tmp_path: Path):
        store = AccountStore(tmp_path)
        store.create_or_get(Credential("vid-1", "t"), "One", now=NOW)

        assert store.path.exists()
        assert not list(tmp_path.glob("*.tmp"))


# =============================================================================
# Feed Store
# =============================================================================


class TestFeedStore:
    """Tests for FeedStore."""

    def test_create_or_get_is_idempotent(self, tmp_path: Path):
        store = FeedStore(tmp_path)
        first = store.create_or_get("MP_1", "Tech", "", owner_account_id=1, now=NOW)
        second = store.create_or_get("MP_1", "Renamed", "", owner_account_id=2, now=NOW)

        assert second.id == first.id
        assert second.title == "Tech"
        assert store.count() == 1

    def test_find_needing_sync_orders_never_synced_first(self, tmp_path: Path):
        store = FeedStore(tmp_path)
        old = store.create_or_get("MP_OLD", "Old", "", 1, now=NOW - timedelta(days=3))
        fresh = store.create_or_get("MP_FRESH", "Fresh", "", 1, now=NOW - timedelta(days=2))
        never = store.create_or_get("MP_NEVER", "Never", "", 1, now=NOW - timedelta(days=1))
        older = store.create_or_get("MP_OLDER", "Older", "", 1, now=NOW - timedelta(days=4))
        store.update_last_sync(old.id, NOW - timedelta(hours=5))
        store.update_last_sync(older.id, NOW - timedelta(hours=10))
        store.update_last_sync(fresh.id, NOW - timedelta(minutes=10))

        due = store.find_needing_sync(timedelta(hours=1), now=NOW)

        assert [feed.id for feed in due] == [never.id, older.id, old.id]

    def test_update_last_sync_missing_feed(self, tmp_path: Path):
        with pytest.raises(KeyError):
            FeedStore(tmp_path).update_last_sync(42, NOW)

    def test_update_metadata(self, tmp_path: Path):
        store = FeedStore(tmp_path)
        feed = store.create_or_get("MP_1", "Tech", "", 1, now=NOW)

        store.update_metadata(feed.id, "Tech Weekly", "Weekly digest")

        reloaded = store.get(feed.id)
        assert (reloaded.title, reloaded.description) == ("Tech Weekly", "Weekly digest")


# =============================================================================
# Article Store
# =============================================================================


class TestArticleStore:
    """Tests for ArticleStore."""

    def test_create_batch_skips_duplicates(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        store.create_or_get(_draft("https://a/1"))

        inserted = store.create_batch([_draft("https://a/1"), _draft("https://a/2"), _draft("https://a/2")])

        assert inserted == 1
        assert sorted(a.source_url for a in store.list_all()) == ["https://a/1", "https://a/2"]

    def test_create_or_get_returns_existing_unchanged(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        first = store.create_or_get(_draft("https://a/1"))
        draft = _draft("https://a/1")
        draft.title = "Different"

        second = store.create_or_get(draft)

        assert second.id == first.id
        assert second.title == first.title

    def test_list_unsynced_newest_first(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        store.create_batch([_draft("https://a/old", days_ago=3), _draft("https://a/new", days_ago=1)])
        synced = store.create_or_get(_draft("https://a/done", days_ago=0))
        store.mark_synced(synced.id, "notes/done.md")

        unsynced = store.list_unsynced()

        assert [a.source_url for a in unsynced] == ["https://a/new", "https://a/old"]
        assert store.count_unsynced() == 2

    def test_mark_synced_and_clear(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        article = store.create_or_get(_draft("https://a/1"))

        store.mark_synced(article.id, "WeWe RSS/Feed/Title.md")
        assert store.get(article.id).synced
        assert store.get(article.id).artifact_ref == "WeWe RSS/Feed/Title.md"

        store.clear_artifact_ref(article.id)
        assert store.get(article.id).artifact_ref is None
        assert not store.get(article.id).synced

    def test_delete_older_than_returns_ids(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        store.create_batch(
            [
                _draft("https://a/keep", days_ago=10),
                _draft("https://a/drop1", days_ago=31),
                _draft("https://a/drop2", days_ago=45),
            ]
        )
        expected = sorted(
            a.id for a in store.list_all() if a.source_url.startswith("https://a/drop")
        )

        deleted = store.delete_older_than(NOW - timedelta(days=30))

        assert deleted == expected
        assert [a.source_url for a in store.list_all()] == ["https://a/keep"]

    def test_delete_older_than_nothing_to_delete(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        store.create_or_get(_draft("https://a/1", days_ago=1))

        assert store.delete_older_than(NOW - timedelta(days=30)) == []

    def test_delete_by_feed_cascade(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        store.create_batch([_draft("https://a/1", feed_id=1), _draft("https://a/2", feed_id=2)])

        deleted = store.delete_by_feed(1)

        assert len(deleted) == 1
        assert store.count_by_feed() == {2: 1}

    def test_find_published_between(self, tmp_path: Path):
        store = ArticleStore(tmp_path)
        store.create_batch([_draft("https://a/1", days_ago=1), _draft("https://a/5", days_ago=5)])

        found = store.find_published_between(NOW - timedelta(days=2), NOW + timedelta(seconds=1))

        assert [a.source_url for a in found] == ["https://a/1"]

"""Shared fixtures for the sync service tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from wewe_sync.config import SyncSettings
from wewe_sync.integrations.wewe import Credential, LoginResult, LoginUrl, MpArticle, MpInfo
from wewe_sync.storage.models import Account, AccountStatus
from wewe_sync.storage.registry import AccountStore, ArticleStore, FeedStore
from wewe_sync.sync import AccountManager, FeedService

NOW = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """A settable clock returning timezone-aware UTC datetimes."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeClient:
    """In-memory stand-in for :class:`WeReadClient`.

    ``pages`` maps a feed id to its article pages (page 1 first). ``errors``
    maps ``(feed id, page)`` to an exception raised for that request.
    """

    def __init__(self) -> None:
        self.pages: dict[str, list[list[MpArticle]]] = {}
        self.errors: dict[tuple[str, int], Exception] = {}
        self.mp_infos: dict[str, list[MpInfo] | Exception] = {}
        self.login_results: list[LoginResult | Exception] = []
        self.article_calls: list[tuple[str, str, int]] = []
        self.info_calls: list[tuple[str, str]] = []
        self.login_calls = 0
        self.healthy = True

    def create_login_url(self) -> LoginUrl:
        return LoginUrl(uuid="session-1", scan_url="https://weread.example/scan/session-1")

    def get_login_result(self, uuid: str) -> LoginResult:
        self.login_calls += 1
        item = self.login_results.pop(0) if self.login_results else LoginResult(message="waiting")
        if isinstance(item, Exception):
            raise item
        return item

    def get_mp_info(self, share_link: str, credential: Credential) -> list[MpInfo]:
        self.info_calls.append((share_link, credential.external_id))
        result = self.mp_infos.get(share_link, [])
        if isinstance(result, Exception):
            raise result
        return result

    def get_mp_articles(self, mp_id: str, credential: Credential, page: int = 1) -> list[MpArticle]:
        self.article_calls.append((mp_id, credential.external_id, page))
        error = self.errors.get((mp_id, page))
        if error is not None:
            raise error
        pages = self.pages.get(mp_id, [])
        return pages[page - 1] if page <= len(pages) else []

    def check_health(self) -> bool:
        return self.healthy


def make_article(article_id: str, days_ago: float, title: str | None = None, now: datetime = NOW) -> MpArticle:
    published = now - timedelta(days=days_ago)
    return MpArticle(
        id=article_id,
        title=title or f"Article {article_id}",
        publish_time=int(published.timestamp()),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mp_article():
    """Build an :class:`MpArticle` published ``days_ago`` days before NOW."""
    return make_article


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        platform_url="https://weread.example",
        update_delay_seconds=0,
        max_pages=3,
        refresh_pages=1,
    )


@pytest.fixture
def account_store(tmp_path: Path) -> AccountStore:
    return AccountStore(tmp_path / "store")


@pytest.fixture
def feed_store(tmp_path: Path) -> FeedStore:
    return FeedStore(tmp_path / "store")


@pytest.fixture
def article_store(tmp_path: Path) -> ArticleStore:
    return ArticleStore(tmp_path / "store")


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def manager(account_store, fake_client, settings, clock) -> AccountManager:
    return AccountManager(account_store, fake_client, settings, clock=clock)


@pytest.fixture
def feed_service(feed_store, article_store, manager, fake_client, settings, clock) -> FeedService:
    return FeedService(feed_store, article_store, manager, fake_client, settings, clock=clock)


@pytest.fixture
def add_account(account_store, clock):
    """Create an account, optionally in a given state."""

    def _add(
        external_id: str = "vid-1",
        status: AccountStatus = AccountStatus.ACTIVE,
        blacklisted_until: datetime | None = None,
    ) -> Account:
        account = account_store.create_or_get(
            Credential(external_id=external_id, token=f"token-{external_id}"),
            f"Reader {external_id}",
            now=clock(),
        )
        if status is not AccountStatus.ACTIVE:
            account.status = status
            account.blacklisted_until = blacklisted_until
            account = account_store.save(account, now=clock())
        return account

    return _add

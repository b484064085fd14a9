"""Account lifecycle: sign-in handshake, selection and failure handling.

Accounts move through a small state machine::

    active <-> blacklisted      (rate limited, cleared lazily once expired)
    active  -> expired          (authentication rejected; needs a new token)
    any     -> disabled         (manual)

Selection is planned by :func:`plan_account_selection`, a pure function over
a snapshot of accounts. :class:`AccountManager` applies the plan and owns all
state changes.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable, List

from wewe_sync.config import SyncSettings
from wewe_sync.integrations.wewe import (
    Credential,
    ErrorKind,
    WeReadApiError,
    WeReadClient,
)
from wewe_sync.storage.models import Account, AccountStatus, utcnow
from wewe_sync.storage.registry import AccountStore

from .errors import AccountNotFoundError, SyncError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class AccountSelection:
    """Outcome of planning which account to use.

    Attributes:
        selected: The account to use, already in its post-plan state, or None.
        reactivated: Blacklisted accounts whose suspension has ended; they
            must be persisted as active.
    """

    selected: Account | None
    reactivated: tuple[Account, ...] = ()


def plan_account_selection(accounts: Iterable[Account], now: datetime) -> AccountSelection:
    """Plan account selection over a snapshot without touching any store.

    Every blacklisted account whose ``blacklisted_until`` is at or before
    ``now`` is listed for reactivation. The first account (by id) that is
    active, or becomes active through reactivation, is selected.
    """
    reactivated: list[Account] = []
    selected: Account | None = None

    for account in sorted(accounts, key=lambda a: a.id):
        if account.status is AccountStatus.BLACKLISTED:
            if account.blacklisted_until is None or account.blacklisted_until > now:
                continue
            candidate = replace(account, status=AccountStatus.ACTIVE, blacklisted_until=None)
            reactivated.append(candidate)
        elif account.status is AccountStatus.ACTIVE:
            candidate = account
        else:
            continue
        if selected is None:
            selected = candidate

    return AccountSelection(selected=selected, reactivated=tuple(reactivated))


@dataclass(frozen=True)
class LoginSession:
    """A sign-in handshake waiting for the user to authorize it."""

    session_id: str
    authorization_prompt: str
    started_at: datetime


@dataclass
class _LoginState:
    session: LoginSession
    completed: threading.Event = field(default_factory=threading.Event)
    lock: threading.Lock = field(default_factory=threading.Lock)
    account: Account | None = None


class AccountManager:
    """Owns every account state transition."""

    def __init__(
        self,
        store: AccountStore,
        client: WeReadClient,
        settings: SyncSettings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings or SyncSettings()
        self._clock = clock
        self._sessions: dict[str, _LoginState] = {}
        self._sessions_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def begin_login(self) -> LoginSession:
        """Start a sign-in handshake. No account exists until it completes."""
        login_url = self.client.create_login_url()
        session = LoginSession(
            session_id=login_url.uuid or uuid.uuid4().hex,
            authorization_prompt=login_url.scan_url,
            started_at=self._clock(),
        )
        with self._sessions_lock:
            self._sessions[session.session_id] = _LoginState(session=session)
        logger.info("Login session started: %s", session.session_id)
        return session

    def poll_login(self, session_id: str) -> Account | None:
        """Poll a handshake once.

        Returns:
            None while the user has not authorized yet, otherwise the account
            (created, or refreshed if the identity was already known). After
            completion every call returns the same account without I/O.

        Raises:
            SyncError: Unknown session id.
            WeReadApiError: The poll failed while the session was still pending.
        """
        state = self._get_session(session_id)
        if state.completed.is_set():
            logger.debug("Login session %s already completed; ignoring poll", session_id)
            return state.account

        try:
            if state.completed.is_set():
                logger.debug("Login session %s completed before request; skipping", session_id)
                return state.account
            result = self.client.get_login_result(session_id)
        except WeReadApiError as exc:
            if state.completed.is_set():
                logger.debug("Ignoring error from in-flight poll of completed session %s: %s", session_id, exc)
                return state.account
            raise

        if not result.completed:
            return None

        with state.lock:
            if state.completed.is_set():
                logger.debug("Login session %s completed by a concurrent poll", session_id)
                return state.account
            credential = Credential(external_id=str(result.vid), token=str(result.token))
            account = self.store.create_or_get(
                credential,
                result.username or credential.external_id,
                now=self._clock(),
            )
            state.account = account
            state.completed.set()

        logger.info("Login completed: account %s (id=%d)", account.display_name, account.id)
        return account

    def login_completed(self, session_id: str) -> bool:
        return self._get_session(session_id).completed.is_set()

    def discard_login(self, session_id: str) -> None:
        with self._sessions_lock:
            self._sessions.pop(session_id, None)

    def _get_session(self, session_id: str) -> _LoginState:
        with self._sessions_lock:
            state = self._sessions.get(session_id)
        if state is None:
            raise SyncError(f"Unknown login session: {session_id}")
        return state

    # ------------------------------------------------------------------
    # Selection and outcomes
    # ------------------------------------------------------------------

    def select_usable_account(self) -> Account | None:
        """Return an account usable right now, or None when none is.

        Blacklisted accounts whose suspension has ended are reactivated and
        persisted as part of the selection.
        """
        snapshot = self.store.list_by_status(AccountStatus.ACTIVE, AccountStatus.BLACKLISTED)
        plan = plan_account_selection(snapshot, self._clock())

        if plan.reactivated:
            self.store.save_many(plan.reactivated, now=self._clock())
            for account in plan.reactivated:
                logger.info("Account %s rate limit expired; reactivated", account.display_name)

        if plan.selected is None:
            logger.warning("No usable account available")
        return plan.selected

    def report_outcome(self, account_id: int, error: WeReadApiError | ErrorKind) -> Account | None:
        """Apply the consequence of a failed call to the account that made it.

        Returns:
            The account after the update, or None if it no longer exists.
        """
        kind = error if isinstance(error, ErrorKind) else error.kind
        account = self.store.get(account_id)
        if account is None:
            logger.warning("Outcome reported for missing account %d", account_id)
            return None

        if kind is ErrorKind.UNAUTHORIZED:
            if account.status in (AccountStatus.ACTIVE, AccountStatus.BLACKLISTED):
                account.status = AccountStatus.EXPIRED
                account = self.store.save(account, now=self._clock())
                logger.warning("Account %s authentication expired; sign in again", account.display_name)
        elif kind is ErrorKind.RATE_LIMITED:
            if account.status in (AccountStatus.ACTIVE, AccountStatus.BLACKLISTED):
                now = self._clock()
                account.status = AccountStatus.BLACKLISTED
                account.blacklisted_until = now + self.settings.blacklist_duration
                account = self.store.save(account, now=now)
                logger.warning(
                    "Account %s rate limited; blacklisted until %s",
                    account.display_name,
                    account.blacklisted_until.isoformat(),
                )
        elif kind is ErrorKind.CREDENTIAL_FORMAT:
            logger.error(
                "Account %s has an incomplete credential; sign in again to re-issue it",
                account.display_name,
            )
        else:
            logger.info("Account %s unaffected by %s failure", account.display_name, kind.value)
        return account

    # ------------------------------------------------------------------
    # Manual management
    # ------------------------------------------------------------------

    def get_account(self, account_id: int) -> Account:
        account = self.store.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def list_accounts(self) -> List[Account]:
        return self.store.list_all()

    def set_status(self, account_id: int, status: AccountStatus) -> Account:
        """Manually enable, disable or expire an account."""
        if status is AccountStatus.BLACKLISTED:
            raise ValueError("Accounts are blacklisted only by rate-limit outcomes")
        account = self.get_account(account_id)
        account.status = status
        account.blacklisted_until = None
        account = self.store.save(account, now=self._clock())
        logger.info("Account %s set to %s", account.display_name, status.value)
        return account

    def update_token(self, account_id: int, token: str) -> Account:
        """Re-issue an account's token; an expired account becomes active."""
        account = self.get_account(account_id)
        credential = Credential(external_id=account.external_id, token=token.strip())
        credential.validate()
        account.credential = credential
        if account.status is AccountStatus.EXPIRED:
            account.status = AccountStatus.ACTIVE
        account = self.store.save(account, now=self._clock())
        logger.info("Token updated for account %s", account.display_name)
        return account

    def rename(self, account_id: int, display_name: str) -> Account:
        name = display_name.strip()
        if not name:
            raise ValueError("Display name must not be empty")
        account = self.get_account(account_id)
        account.display_name = name
        account = self.store.save(account, now=self._clock())
        logger.info("Account %d renamed to %s", account.id, name)
        return account

    def delete_account(self, account_id: int) -> None:
        if not self.store.delete(account_id):
            raise AccountNotFoundError(account_id)
        logger.info("Account %d deleted", account_id)

    def stats(self) -> dict[str, int]:
        counts = self.store.count_by_status()
        counts["total"] = sum(counts.values())
        return counts

    def check_server_health(self) -> bool:
        return self.client.check_health()

"""Timer-driven polling of a sign-in handshake."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable

from wewe_sync.integrations.wewe import WeReadApiError
from wewe_sync.storage.models import Account

from .accounts import AccountManager, LoginSession

logger = logging.getLogger(__name__)


class PollOutcome(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class LoginPoller:
    """Polls :meth:`AccountManager.poll_login` on a fixed interval.

    Polling stops on success, on a non-transient error, after
    ``max_errors`` consecutive transient errors, once ``expiry_seconds``
    have elapsed, or on :meth:`cancel`. The stop flag is checked at the start
    of every tick and again right before the network call, and an error from
    a tick that was already in flight when polling stopped is dropped.
    """

    def __init__(
        self,
        manager: AccountManager,
        session: LoginSession,
        *,
        interval: float = 2.0,
        max_errors: int = 3,
        expiry_seconds: float = 300.0,
        on_complete: Callable[[Account], None] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.manager = manager
        self.session = session
        self.interval = interval
        self.max_errors = max_errors
        self.on_complete = on_complete
        self._monotonic = monotonic
        self._deadline = monotonic() + expiry_seconds
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._consecutive_errors = 0
        self._thread: threading.Thread | None = None
        self.outcome = PollOutcome.PENDING
        self.account: Account | None = None
        self.error: Exception | None = None

    @property
    def done(self) -> bool:
        return self._stopped.is_set()

    def _finish(
        self,
        outcome: PollOutcome,
        *,
        account: Account | None = None,
        error: Exception | None = None,
    ) -> bool:
        """Record the final outcome once. Returns False if polling already stopped."""
        with self._lock:
            if self._stopped.is_set():
                return False
            self.outcome = outcome
            self.account = account
            self.error = error
            self._stopped.set()
            return True

    def tick(self) -> bool:
        """Run one poll. Returns True while polling should continue."""
        if self._stopped.is_set():
            return False
        if self._monotonic() >= self._deadline:
            logger.warning("Login session %s expired", self.session.session_id)
            self._finish(PollOutcome.EXPIRED)
            return False

        try:
            if self._stopped.is_set():
                return False
            account = self.manager.poll_login(self.session.session_id)
        except WeReadApiError as exc:
            if self._stopped.is_set():
                logger.debug("Dropping error from in-flight login poll: %s", exc)
                return False
            if not exc.retryable:
                logger.error("Login failed: %s", exc)
                self._finish(PollOutcome.FAILED, error=exc)
                return False
            self._consecutive_errors += 1
            if self._consecutive_errors >= self.max_errors:
                logger.error(
                    "Login polling stopped after %d consecutive errors: %s",
                    self._consecutive_errors,
                    exc,
                )
                self._finish(PollOutcome.FAILED, error=exc)
                return False
            logger.warning(
                "Login poll failed (%d/%d): %s",
                self._consecutive_errors,
                self.max_errors,
                exc,
            )
            return True

        self._consecutive_errors = 0
        if account is None:
            return not self._stopped.is_set()

        if self._finish(PollOutcome.COMPLETED, account=account) and self.on_complete is not None:
            self.on_complete(account)
        return False

    def run(self) -> Account | None:
        """Poll in the foreground until polling stops."""
        while self.tick():
            if self._stopped.wait(self.interval):
                break
        return self.account

    def start(self) -> None:
        """Poll on a daemon thread."""
        if self._thread is not None:
            raise RuntimeError("Login poller already started")
        self._thread = threading.Thread(
            target=self.run,
            name=f"login-poll-{self.session.session_id}",
            daemon=True,
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        if not self._stopped.is_set():
            logger.info("Login polling cancelled for session %s", self.session.session_id)
        self._finish(PollOutcome.CANCELLED)

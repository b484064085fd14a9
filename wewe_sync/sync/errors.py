"""Exceptions raised by the sync services."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync service failures."""


class NoCapacityError(SyncError):
    """Raised when no account is usable for an outbound call."""

    def __init__(self, message: str = "No usable account available; sign in or wait for a rate limit to expire.") -> None:
        super().__init__(message)


class AccountNotFoundError(SyncError):
    def __init__(self, account_id: int) -> None:
        super().__init__(f"Account {account_id} does not exist")
        self.account_id = account_id


class FeedNotFoundError(SyncError):
    def __init__(self, feed_id: int) -> None:
        super().__init__(f"Feed {feed_id} does not exist")
        self.feed_id = feed_id


class SyncInProgressError(SyncError):
    """Raised when a sync cycle is started while another one is running."""

    def __init__(self) -> None:
        super().__init__("A sync cycle is already running")

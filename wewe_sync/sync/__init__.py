"""Account rotation, feed fetching and sync cycles."""

from __future__ import annotations


from .accounts import AccountManager, AccountSelection, LoginSession, plan_account_selection
from .errors import (
    AccountNotFoundError,
    FeedNotFoundError,
    NoCapacityError,
    SyncError,
    SyncInProgressError,
)
from .feeds import FeedService, RefreshResult
from .login import LoginPoller, PollOutcome
from .runner import PruneResult, SyncOptions, SyncResult, SyncRunner
from .scheduler import SyncScheduler


__all__ = [
    "AccountManager",
    "AccountNotFoundError",
    "AccountSelection",
    "FeedNotFoundError",
    "FeedService",
    "LoginPoller",
    "LoginSession",
    "NoCapacityError",
    "PollOutcome",
    "PruneResult",
    "RefreshResult",
    "SyncError",
    "SyncInProgressError",
    "SyncOptions",
    "SyncResult",
    "SyncRunner",
    "SyncScheduler",
    "plan_account_selection",
]

"""Periodic sync cycles."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from wewe_sync.storage.models import utcnow

from .errors import SyncInProgressError
from .runner import SyncOptions, SyncResult, SyncRunner

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs sync cycles on a fixed interval in the foreground.

    The first cycle runs immediately. A cycle that fails or overlaps one
    already running is logged and the schedule carries on. :meth:`stop`
    interrupts the wait between cycles.
    """

    def __init__(
        self,
        runner: SyncRunner,
        interval_minutes: float = 60.0,
        *,
        options: SyncOptions | None = None,
        retention_days: int | None = None,
        on_result: Callable[[SyncResult], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")
        self.runner = runner
        self.interval = timedelta(minutes=interval_minutes)
        self.options = options or SyncOptions(mode="stale")
        self.retention_days = retention_days
        self.on_result = on_result
        self._clock = clock
        self._stopped = threading.Event()
        self._sleep = sleep or self._stopped.wait
        self.cycles = 0
        self.failures = 0
        self.last_run_at: datetime | None = None
        self.next_run_at: datetime | None = None

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def run_now(self) -> SyncResult | None:
        """Run one cycle. Returns None when it was skipped or failed."""
        self.cycles += 1
        self.last_run_at = self._clock()
        try:
            result = self.runner.run_cycle(self.retention_days, self.options)
        except SyncInProgressError:
            logger.warning("Skipping scheduled sync: a cycle is already running")
            return None
        except Exception as exc:
            self.failures += 1
            logger.error("Scheduled sync failed: %s", exc)
            return None

        if self.on_result is not None:
            self.on_result(result)
        return result

    def run(self, max_cycles: int | None = None) -> int:
        """Run cycles until :meth:`stop` is called or ``max_cycles`` have run.

        Returns:
            Number of cycles run by this call.
        """
        logger.info(
            "Scheduled sync every %.0f minutes (mode=%s)",
            self.interval.total_seconds() / 60,
            self.options.mode,
        )
        ran = 0
        while not self._stopped.is_set():
            self.run_now()
            ran += 1
            if self._stopped.is_set() or (max_cycles is not None and ran >= max_cycles):
                break
            self.next_run_at = self._clock() + self.interval
            logger.info("Next sync at %s", self.next_run_at.isoformat())
            self._sleep(self.interval.total_seconds())

        self.next_run_at = None
        logger.info("Scheduled sync stopped after %d cycles", ran)
        return ran

    def stop(self) -> None:
        self._stopped.set()

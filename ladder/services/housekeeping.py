"""
Housekeeping Service - Background Maintenance

Scheduler hooks for the engine's time-based cleanup:
- queue entries that waited longer than QUEUE_ENTRY_TIMEOUT_MINUTES are removed
- hosts who have not confirmed within HOST_CONFIRM_TIMEOUT_MINUTES are replaced
- matches still pending after STALE_MATCH_HOURS are cancelled

Everything goes through the ordinary queue and match operations, so a stale
match is cancelled (never deleted) and its queue lock is released.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ladder.config import Config
from ladder.constants import HousekeepingConstants
from ladder.utils.clock import utc_now
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class HousekeepingReport:
    """What one housekeeping pass changed"""
    expired_entries: List[int] = field(default_factory=list)
    reassigned_hosts: List[str] = field(default_factory=list)
    cancelled_matches: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.expired_entries or self.reassigned_hosts or self.cancelled_matches)


class HousekeepingService:
    """Background maintenance over the queue and match operations"""

    def __init__(
        self,
        queue_ops,
        match_ops,
        queue_entry_timeout: timedelta = None,
        host_confirm_timeout: timedelta = None,
        stale_match_age: timedelta = None,
    ):
        self.queues = queue_ops
        self.matches = match_ops
        self.queue_entry_timeout = queue_entry_timeout or timedelta(minutes=Config.QUEUE_ENTRY_TIMEOUT_MINUTES)
        self.host_confirm_timeout = host_confirm_timeout or timedelta(minutes=Config.HOST_CONFIRM_TIMEOUT_MINUTES)
        self.stale_match_age = stale_match_age or timedelta(hours=Config.STALE_MATCH_HOURS)
        self._task: Optional[asyncio.Task] = None
        self.logger = logger

    async def run_once(self, now: datetime = None) -> HousekeepingReport:
        """Run every cleanup step once"""
        now = now or utc_now()
        report = HousekeepingReport()

        for title in self.queues.titles:
            removed = await self.queues.remove_expired(title, now - self.queue_entry_timeout)
            report.expired_entries.extend(removed)

        # Cancel first so a stale match does not get a fresh host
        for match in self.matches.stale_pending(now - self.stale_match_age):
            result = await self.matches.cancel_match(match.match_id, reason="stale pending match", now=now)
            if result.success:
                report.cancelled_matches.append(match.match_id)
            else:
                self.logger.warning(f"Could not cancel stale match {match.match_id}: {result.message}")

        for match in self.matches.unconfirmed_hosts(now - self.host_confirm_timeout):
            result = await self.matches.reassign_host(match.match_id, now=now)
            if result.success:
                report.reassigned_hosts.append(match.match_id)
            else:
                self.logger.warning(f"Could not reassign host for {match.match_id}: {result.message}")

        if report.changed:
            self.logger.info(
                f"Housekeeping: expired {len(report.expired_entries)} queue entries, "
                f"reassigned {len(report.reassigned_hosts)} hosts, "
                f"cancelled {len(report.cancelled_matches)} matches"
            )
        return report

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_seconds: float = HousekeepingConstants.DEFAULT_INTERVAL_SECONDS):
        """Start the background loop; calling it while running is a no-op"""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(interval_seconds))
        self.logger.info("HousekeepingService: Background task started")

    async def stop(self):
        """Stop the background loop and wait for it to finish"""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("HousekeepingService: Background task stopped")

    async def _loop(self, interval_seconds: float):
        while True:
            try:
                await self.run_once()
            except Exception as e:
                self.logger.error(f"Error in housekeeping task: {e}", exc_info=True)
            await asyncio.sleep(interval_seconds)

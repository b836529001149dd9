"""Background expiry of drop messages.

The ExpiryScheduler sweeps expired rows once at start-up and then on a
fixed interval, draining the whole backlog in each sweep. The same loop
prunes elapsed rate-limit buckets so process memory stays bounded; that
part keeps running when sweeping is handed to an external cron job.
"""

from __future__ import annotations

import asyncio
import logging
import math

from tagdrop.core.settings import settings
from tagdrop.repositories.drop_repo import DropRepository, DropStoreError, get_drop_repository
from tagdrop.services.rate_limit import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

_sweep_in_progress = False


async def purge_expired_drop_messages(
    repository: DropRepository, batch_size: int | None = None
) -> int:
    """Delete every expired message in batches and return the total removed.

    Returns 0 without touching the store when another sweep is still running.
    """
    global _sweep_in_progress

    if _sweep_in_progress:
        logger.debug("Drop expiry sweep already running; skipping")
        return 0

    size = batch_size or settings.drop_expiry_batch_size
    _sweep_in_progress = True
    try:
        total_deleted = 0
        while True:
            deleted = await asyncio.to_thread(repository.purge_expired, size)
            total_deleted += deleted
            if deleted < size:
                break
        return total_deleted
    finally:
        _sweep_in_progress = False


def sweep_in_progress() -> bool:
    """Return True while a sweep holds the in-progress flag."""
    return _sweep_in_progress


class ExpiryScheduler:
    """Recurring sweep task living on the application's event loop."""

    def __init__(
        self,
        repository: DropRepository | None = None,
        rate_limiter: RateLimiter | None = None,
        *,
        interval_seconds: float | None = None,
        prune_interval_seconds: float | None = None,
        batch_size: int | None = None,
        sweep_expired: bool = True,
    ) -> None:
        """Initialize the scheduler.

        Args:
            repository: Store to sweep. Defaults to the shared repository.
            rate_limiter: Limiter to prune. Defaults to the configured backend.
            interval_seconds: Delay between expiry sweeps.
            prune_interval_seconds: Delay between rate-limit bucket prunes.
            batch_size: Rows deleted per purge call.
            sweep_expired: When False only rate-limit buckets are pruned and
                expired rows are left to an external ``purge`` job.
        """
        self.repository = repository or get_drop_repository()
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.interval_seconds = max(
            0.01, float(interval_seconds or settings.drop_expiry_interval_seconds)
        )
        self.prune_interval_seconds = max(
            0.01,
            float(prune_interval_seconds or settings.drop_rate_limit_prune_interval_seconds),
        )
        self.batch_size = batch_size or settings.drop_expiry_batch_size
        self.sweep_expired = sweep_expired
        self._task: asyncio.Task[None] | None = None
        self._sweeps: set[asyncio.Task[int]] = set()
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        """Return True while the background task is alive."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop; the first sweep runs immediately."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        if self._sweeps:
            await asyncio.gather(*self._sweeps)

    async def run_sweep(self) -> int:
        """Run one sweep, logging instead of raising on any failure."""
        try:
            deleted = await purge_expired_drop_messages(self.repository, self.batch_size)
        except DropStoreError:
            logger.exception("Drop expiry sweep failed")
            return 0
        except Exception:
            # Sweep tasks are never awaited individually; the next tick retries.
            logger.exception("Drop expiry sweep failed unexpectedly")
            return 0
        if deleted > 0:
            logger.info("Drop expiry sweep deleted %d messages", deleted)
        return deleted

    def prune_rate_limits(self) -> int:
        """Drop elapsed rate-limit buckets."""
        removed = self.rate_limiter.prune()
        if removed:
            logger.debug("Pruned %d rate-limit buckets", removed)
        return removed

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_sweep = loop.time() if self.sweep_expired else math.inf
        next_prune = loop.time() + self.prune_interval_seconds

        while not self._stopping.is_set():
            now = loop.time()
            if now >= next_sweep:
                # Overlapping ticks are no-ops while the in-progress flag is set.
                sweep = asyncio.create_task(self.run_sweep())
                self._sweeps.add(sweep)
                sweep.add_done_callback(self._sweeps.discard)
                next_sweep = now + self.interval_seconds
            if now >= next_prune:
                self.prune_rate_limits()
                next_prune = now + self.prune_interval_seconds

            timeout = max(0.0, min(next_sweep, next_prune) - loop.time())
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=timeout)
            except TimeoutError:
                continue

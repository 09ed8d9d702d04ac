"""CacheJanitor — periodic eviction of expired cache entries."""

from __future__ import annotations

import asyncio
import logging

from content_resolver.caching.response_cache import ResponseCache

logger = logging.getLogger(__name__)


class CacheJanitor:
    """Sweeps a ``ResponseCache`` every ``interval_seconds`` until stopped.

    Args:
        cache:            Cache to sweep.
        interval_seconds: Pause between sweeps (default one hour).
    """

    def __init__(self, cache: ResponseCache, interval_seconds: float = 3600.0) -> None:
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Sweep the cache once; return the number of evicted entries."""
        removed = self.cache.sweep()
        self.runs += 1
        if removed:
            logger.info("Cache sweep evicted %d expired entries (%d remain)", removed, self.cache.size)
        else:
            logger.debug("Cache sweep found no expired entries")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception:
                logger.exception("Cache sweep failed; will retry next interval")

    def start(self) -> None:
        """Launch the sweep loop on the running event loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="cache-janitor")
        logger.info("Cache janitor started (interval %.0fs)", self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache janitor stopped")

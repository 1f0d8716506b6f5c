"""
POLL SCHEDULER

Sequential poll loop: each tick is awaited to completion before the next
one is scheduled, so ticks never overlap. A tick that runs longer than the
interval delays the next one (counted as an overrun).
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class PollScheduler:
    """
    Usage:
        scheduler = PollScheduler({'poll_interval_ms': 3000})
        await scheduler.run(pipeline.run_tick)
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 on_error: Optional[Callable[[Exception], Awaitable]] = None):
        self.config = config or {}
        self.interval = self.config.get('poll_interval_ms', 3000) / 1000
        self._clock = clock
        self._sleep = sleep
        self._on_error = on_error
        self._running = False

        self.stats = {
            'scans': 0,
            'errors': 0,
            'overruns': 0,
            'last_duration': 0.0,
        }

    @property
    def running(self) -> bool:
        return self._running

    async def run(self, tick: Callable[[], Awaitable]):
        """Run `tick` every interval until stop() is called."""
        self._running = True
        logger.info(f"[SCHEDULER] Poll loop started (interval {self.interval:.1f}s)")

        while self._running:
            elapsed = await self.run_once(tick)

            if not self._running:
                break

            await self._sleep(max(0.0, self.interval - elapsed))

        logger.info("[SCHEDULER] Poll loop stopped")

    async def run_once(self, tick: Callable[[], Awaitable]) -> float:
        """
        Run a single tick. Exceptions are logged, never propagated.

        Returns:
            Tick duration in seconds
        """
        start = self._clock()
        try:
            await tick()
        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"[SCHEDULER] Tick failed: {e}", exc_info=True)
            await self._report(e)

        elapsed = self._clock() - start
        self.stats['scans'] += 1
        self.stats['last_duration'] = elapsed

        if elapsed > self.interval:
            self.stats['overruns'] += 1
            logger.warning(f"[SCHEDULER] Tick took {elapsed:.1f}s (interval {self.interval:.1f}s)")

        return elapsed

    async def _report(self, error: Exception):
        if self._on_error is None:
            return
        try:
            await self._on_error(error)
        except Exception as e:
            logger.warning(f"[SCHEDULER] Error report failed: {e}")

    def stop(self):
        """End the loop after the current tick."""
        self._running = False

    def get_stats(self) -> Dict:
        return dict(self.stats)

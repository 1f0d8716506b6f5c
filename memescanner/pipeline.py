"""
SCAN PIPELINE

One poll tick of the search mode:

    PairSource.fetch_new_pairs()
        -> SafetyFilter.evaluate_with_security() -> new pair alert
    every observed snapshot
        -> StrategyEngine.analyze() -> strategy alerts

Errors while handling one token are logged and do not affect the others.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from .database import TokenDatabase
from .filters import SafetyFilter
from .formatting import format_pair_alert
from .models import MarketSnapshot
from .notifier import TelegramNotifier
from .scanner import PairSource
from .strategies import StrategyEngine

logger = logging.getLogger(__name__)


class ScanPipeline:
    """Wires the search-mode components for one tick."""

    def __init__(self, source: PairSource, safety_filter: SafetyFilter, engine: StrategyEngine,
                 notifier: TelegramNotifier, database: Optional[TokenDatabase] = None,
                 config: Dict = None, clock: Callable[[], float] = time.time):
        self.source = source
        self.safety_filter = safety_filter
        self.engine = engine
        self.notifier = notifier
        self.database = database
        self.config = config or {}
        self._clock = clock

        self.alert_delay = self.config.get('alert_delay_seconds', 1.0)
        self.strategy_alert_delay = self.config.get('strategy_alert_delay_seconds', 0.3)
        self.health_interval = self.config.get('health_interval_seconds', 300)
        self.cleanup_interval = self.config.get('db_cleanup_interval_seconds', 3600)

        self._started = self._clock()
        self._last_health = self._started
        self._last_db_cleanup = self._started

        self.stats = {
            'scans': 0,
            'found': 0,
            'passed': 0,
            'alerts': 0,
            'strategy_alerts': 0,
            'errors': 0,
        }

    async def run_tick(self) -> int:
        """
        Returns:
            Number of new pair alerts sent
        """
        self.stats['scans'] += 1
        logger.info(f"━━━ Scan #{self.stats['scans']} ━━━")

        new_pairs = await self.source.fetch_new_pairs()
        self.stats['found'] += len(new_pairs)

        sent = 0
        for snapshot in new_pairs:
            if await self._handle_new_pair(snapshot):
                sent += 1

        for snapshot in self.source.last_observed:
            await self._analyze(snapshot)

        if self.database is not None:
            if self._clock() - self._last_db_cleanup >= self.cleanup_interval:
                self.database.cleanup_old_tokens()
                self._last_db_cleanup = self._clock()
            self.database.flush()

        self.maybe_log_health()
        return sent

    async def _handle_new_pair(self, snapshot: MarketSnapshot) -> bool:
        try:
            verdict = await self.safety_filter.evaluate_with_security(snapshot)
            if not verdict.passed:
                return False

            self.stats['passed'] += 1
            age = snapshot.age_minutes(int(self._clock() * 1000))
            message = format_pair_alert(snapshot, verdict, age)

            if not await self.notifier.send_message(message):
                logger.warning(f"[PIPELINE] Alert for {snapshot.symbol} not delivered")
                return False

            self.stats['alerts'] += 1
            logger.info(f"🚨 Alert sent: {snapshot.symbol}")
            await asyncio.sleep(self.alert_delay)
            return True

        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"[PIPELINE] Error processing {snapshot.symbol}: {e}", exc_info=True)
            return False

    async def _analyze(self, snapshot: MarketSnapshot):
        try:
            results = await self.engine.analyze(snapshot)
            for result in results:
                if await self.notifier.send_message(result.message):
                    self.stats['strategy_alerts'] += 1
                await asyncio.sleep(self.strategy_alert_delay)
        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"[PIPELINE] Strategy analysis failed for {snapshot.symbol}: {e}", exc_info=True)

    def maybe_log_health(self) -> bool:
        """Log a health summary every `health_interval_seconds`."""
        now = self._clock()
        if now - self._last_health < self.health_interval:
            return False
        self._last_health = now

        uptime_minutes = (now - self._started) / 60
        source_stats = self.source.get_stats()
        logger.info(
            f"[HEALTH] Uptime {uptime_minutes:.0f}m | scans {self.stats['scans']} | "
            f"found {self.stats['found']} | passed {self.stats['passed']} | "
            f"alerts {self.stats['alerts']} | strategy alerts {self.stats['strategy_alerts']} | "
            f"cache {source_stats['seen_cache']['size']} | errors {self.stats['errors']}"
        )
        return True

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'source': self.source.get_stats(),
            'filter': self.safety_filter.get_stats(),
            'strategies': self.engine.get_stats(),
            'notifier': self.notifier.get_stats(),
        }

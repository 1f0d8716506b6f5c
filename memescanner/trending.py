"""
TRENDING SCANNER

Second scanner mode over the DexScreener promotion feeds:
- latest token boosts
- top token boosts
- community takeovers

The first scan of a run only collects tokens (no alerts) so a restart does
not replay the whole feed.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from .dex_screener import DexScreenerAPI
from .formatting import format_boost_alert, format_takeover_alert
from .models import MarketSnapshot, TrendingKind, TrendingToken
from .normalizer import PairNormalizer
from .notifier import TelegramNotifier
from .strategies import StrategyEngine

logger = logging.getLogger(__name__)


class TrendingScanner:
    """
    Boost / takeover alerts plus strategy analysis of each alerted token.
    """

    def __init__(self, api: DexScreenerAPI, engine: StrategyEngine, notifier: TelegramNotifier,
                 normalizer: PairNormalizer = None, config: Dict = None):
        self.api = api
        self.engine = engine
        self.notifier = notifier
        self.normalizer = normalizer or PairNormalizer()
        self.config = config or {}

        self.min_liquidity = self.config.get('min_liquidity', 300)
        self.min_market_cap = self.config.get('min_market_cap', 50000)
        self.min_active_boosts = self.config.get('min_active_boosts', 2)
        self.honeypot_change_percent = self.config.get('honeypot_change_percent', 500)
        self.honeypot_max_liquidity = self.config.get('honeypot_max_liquidity', 5000)
        self.seen_limit = self.config.get('seen_limit', 1000)
        self.seen_trim = self.config.get('seen_trim', 500)
        self.token_delay = self.config.get('token_delay_seconds', 0.5)
        self.alert_delay = self.config.get('alert_delay_seconds', 0.3)

        # Insertion-ordered so the oldest keys are trimmed first
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._first_scan = True

        self.stats = {
            'scans': 0,
            'found': 0,
            'alerts': 0,
            'skipped': 0,
            'strategy_alerts': 0,
        }

    async def scan(self) -> int:
        """
        One pass over the three feeds.

        Returns:
            Number of tokens alerted this pass
        """
        self.stats['scans'] += 1
        collect_only = self._first_scan

        if collect_only:
            logger.info("━━━ INITIAL SCAN - Collecting data only (no alerts) ━━━")
        else:
            logger.info(f"━━━ Trending Scan #{self.stats['scans'] - 1} ━━━")

        try:
            latest, top, takeovers = await asyncio.gather(
                self.api.fetch_latest_boosts(),
                self.api.fetch_top_boosts(),
                self.api.fetch_community_takeovers(),
            )
        except Exception as e:
            logger.error(f"[TRENDING] Feed fetch failed: {e}", exc_info=True)
            return 0

        logger.info(f"Latest Boosts: {len(latest)}, Top Boosts: {len(top)}, Takeovers: {len(takeovers)}")

        entries = self._collect_entries(latest, top, takeovers)

        alerted = 0
        for token in entries:
            try:
                if await self._process(token, collect_only):
                    alerted += 1
                    await asyncio.sleep(self.token_delay)
            except Exception as e:
                logger.error(f"[TRENDING] Error processing {token.token_address}: {e}", exc_info=True)

        self._first_scan = False
        self.stats['found'] += alerted
        logger.info(f"[TRENDING] Scan complete: {alerted} alerted, {len(self._seen)} tokens tracked")
        return alerted

    def _collect_entries(self, latest: List[Dict], top: List[Dict], takeovers: List[Dict]) -> List[TrendingToken]:
        entries = []
        for raw_list, kind in ((latest, TrendingKind.BOOST),
                               (top, TrendingKind.TOP_BOOST),
                               (takeovers, TrendingKind.TAKEOVER)):
            for raw in raw_list:
                token = self.normalizer.normalize_trending(raw, kind)
                if token is None:
                    continue
                # Top boosts only add tokens not already tracked
                if kind == TrendingKind.TOP_BOOST and token.token_key in self._seen:
                    continue
                entries.append(token)
        return entries

    def _mark_seen(self, token_key: str) -> bool:
        """Returns False if the key was already seen."""
        if token_key in self._seen:
            return False
        self._seen[token_key] = None
        if len(self._seen) > self.seen_limit:
            for _ in range(self.seen_trim):
                self._seen.popitem(last=False)
        return True

    async def _process(self, token: TrendingToken, collect_only: bool) -> bool:
        if not self._mark_seen(token.token_key):
            return False

        if collect_only:
            logger.debug(f"[FIRST SCAN] Collecting {token.token_address} without alert")
            return False

        if token.kind.is_boost:
            skip_reason = self.boost_skip_reason(token)
            if skip_reason:
                self.stats['skipped'] += 1
                logger.info(f"Skipping {token.token_address}: {skip_reason}")
                return False

            logger.info(f"🎯 Found boosted token: {token.token_address} "
                        f"({token.active_boosts} active boosts, MC: ${(token.market_cap_usd or 0) / 1000:.0f}k)")
            message = format_boost_alert(token)
        else:
            logger.info(f"🏴 Found community takeover: {token.token_address}")
            message = format_takeover_alert(token)

        if await self.notifier.send_message(message):
            self.stats['alerts'] += 1
            logger.info("Boost/Takeover alert sent to Telegram")

        await self._run_strategy_analysis(token)
        return True

    def boost_skip_reason(self, token: TrendingToken) -> Optional[str]:
        """Reason to skip a boost entry, or None when it qualifies."""
        if token.liquidity_usd and token.liquidity_usd < self.min_liquidity:
            return f"Low liquidity (${token.liquidity_usd:.0f} < ${self.min_liquidity})"

        if token.market_cap_usd and token.market_cap_usd < self.min_market_cap:
            return f"Low market cap (${token.market_cap_usd:.0f} < ${self.min_market_cap / 1000:.0f}k)"

        if token.price_change_24h is not None:
            change = abs(token.price_change_24h)
            if change > self.honeypot_change_percent and (token.liquidity_usd or 0) < self.honeypot_max_liquidity:
                return f"Honeypot pattern detected ({change:.0f}% change, low liquidity)"

        if token.active_boosts < self.min_active_boosts:
            return f"Low boost count ({token.active_boosts} < {self.min_active_boosts})"

        return None

    async def _run_strategy_analysis(self, token: TrendingToken):
        snapshot = await self._snapshot_for(token)
        if snapshot is None:
            logger.debug(f"No pair data for {token.token_address}, skipping strategy analysis")
            return

        results = await self.engine.analyze(snapshot)
        if results:
            logger.info(f"🎯 Strategy triggered for {token.token_address}: {len(results)} alerts")

        for result in results:
            if await self.notifier.send_message(result.message):
                self.stats['strategy_alerts'] += 1
            await asyncio.sleep(self.alert_delay)

    async def _snapshot_for(self, token: TrendingToken) -> Optional[MarketSnapshot]:
        """Best pair of the token, or the boost entry's own figures."""
        try:
            pair = await self.api.fetch_token_pair(token.chain_id, token.token_address)
        except Exception as e:
            logger.debug(f"Could not fetch pair data for {token.token_address}: {e}")
            pair = None

        if pair:
            snapshot = self.normalizer.normalize_pair(pair)
            if snapshot is not None:
                return snapshot

        if not token.kind.is_boost:
            return None

        return MarketSnapshot(
            token_address=token.token_address,
            symbol=token.symbol or token.token_address[:8],
            name=token.description or token.symbol or token.token_address[:8],
            liquidity_usd=token.liquidity_usd or 0.0,
            price_usd=token.price_usd or 0.0,
            fdv_usd=token.market_cap_usd or 0.0,
            price_change_24h=token.price_change_24h or 0.0,
            chain_id=token.chain_id,
            url=token.url,
        )

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'tracked': len(self._seen),
            'first_scan_pending': self._first_scan,
        }

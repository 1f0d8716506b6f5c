"""
GATING PREDICATES

Async checks a candidate must pass before it counts as a new pair.
A False result is a normal filter outcome, not an error.
"""

import logging
from typing import Dict

from .fetcher import ResilientFetcher
from .models import MarketSnapshot

logger = logging.getLogger(__name__)


class LiquidityLockGate:
    """
    Liquidity counts as locked only for launchpads whose bonding-curve
    mechanism keeps the pool out of the creator's hands.
    """

    DEFAULT_LOCKED_DEX_IDS = ('pumpfun', 'moonshot')

    def __init__(self, config: Dict = None):
        self.config = config or {}
        self.locked_dex_ids = {
            d.lower() for d in self.config.get('locked_dex_ids', self.DEFAULT_LOCKED_DEX_IDS)
        }

    async def __call__(self, snapshot: MarketSnapshot) -> bool:
        if snapshot.dex_id in self.locked_dex_ids:
            logger.debug(f"✅ {snapshot.symbol}: Locked ({snapshot.dex_id} mechanism)")
            return True
        return False


class RugCheckGate:
    """
    RugCheck risk report gate.

    Rejects on a high risk score or any 'danger' level risk.
    A missing report (too new) or an unavailable API lets the token through.
    """

    BASE_URL = "https://api.rugcheck.xyz/v1/tokens"

    def __init__(self, fetcher: ResilientFetcher, config: Dict = None):
        self.fetcher = fetcher
        self.config = config or {}
        self.base_url = self.config.get('base_url', self.BASE_URL).rstrip('/')
        self.max_score = self.config.get('max_score', 1500)

    async def __call__(self, snapshot: MarketSnapshot) -> bool:
        data = await self.fetcher.fetch(
            f"{self.base_url}/{snapshot.token_address}/report/summary",
            timeout=8.0,
            retries=1,
        )

        if not isinstance(data, dict):
            logger.debug(f"RugCheck report unavailable for {snapshot.symbol}, skipping check")
            return True

        try:
            score = float(data.get('score') or 0)
        except (TypeError, ValueError):
            logger.debug(f"RugCheck score unreadable for {snapshot.symbol}: {data.get('score')!r}")
            score = 0.0

        if score > self.max_score:
            logger.warning(f"❌ {snapshot.symbol} REJECTED: High RugCheck Score ({score})")
            return False

        risks = data.get('risks') if isinstance(data.get('risks'), list) else []
        critical = [r for r in risks if isinstance(r, dict) and r.get('level') == 'danger']
        if critical:
            names = ', '.join(r.get('name', '?') for r in critical)
            logger.warning(f"❌ {snapshot.symbol} REJECTED: Critical Risks ({names})")
            return False

        logger.debug(f"✅ {snapshot.symbol}: RugCheck Passed (Score: {score})")
        return True

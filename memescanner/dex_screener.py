"""
DEXSCREENER API CLIENT

Primary market-data source (FREE, NO API KEY REQUIRED).
All requests go through a ResilientFetcher so the DexScreener circuit
breaker and the shared request queue apply.

Endpoints used:
- /latest/dex/search?q=...                 keyword search
- /latest/dex/tokens/{address}             pairs of one token
- /token-boosts/latest/v1, /top/v1         boosted tokens
- /community-takeovers/latest/v1           community takeovers
- /prices/history/{chain}/{pair}           candles (best-effort backfill)
"""

import logging
from typing import Dict, List, Optional

from .fetcher import ResilientFetcher

logger = logging.getLogger(__name__)


class DexScreenerAPI:
    """
    DexScreener API client.

    Returns raw payloads; PairNormalizer turns them into dataclasses.
    """

    BASE_URL = "https://api.dexscreener.com"

    def __init__(self, fetcher: ResilientFetcher, config: Dict = None):
        """
        Args:
            fetcher: Fetcher bound to the DexScreener circuit breaker
            config: Optional overrides (base_url, search/feed timeouts)
        """
        self.fetcher = fetcher
        self.config = config or {}
        self.base_url = self.config.get('base_url', self.BASE_URL).rstrip('/')
        self.search_timeout = self.config.get('search_timeout', 8.0)
        self.search_retries = self.config.get('search_retries', 2)
        self.feed_timeout = self.config.get('feed_timeout', 10.0)
        self.feed_retries = self.config.get('feed_retries', 3)

    async def search_pairs(self, query: str, chain: str = None) -> List[Dict]:
        """
        Keyword search.

        Args:
            query: Search keyword
            chain: Keep only pairs on this chain (None = all chains)
        """
        data = await self.fetcher.fetch(
            f"{self.base_url}/latest/dex/search",
            params={'q': query},
            timeout=self.search_timeout,
            retries=self.search_retries,
        )

        if not data or not isinstance(data.get('pairs'), list):
            return []

        pairs = data['pairs']
        if chain:
            chain = chain.lower()
            pairs = [p for p in pairs if (p.get('chainId') or '').lower() == chain]

        logger.debug(f"[DEXSCREENER] '{query}': {len(pairs)} pairs")
        return pairs

    async def fetch_latest_boosts(self) -> List[Dict]:
        return await self._fetch_feed('/token-boosts/latest/v1', 'latest boosted tokens')

    async def fetch_top_boosts(self) -> List[Dict]:
        return await self._fetch_feed('/token-boosts/top/v1', 'top boosted tokens')

    async def fetch_community_takeovers(self) -> List[Dict]:
        return await self._fetch_feed('/community-takeovers/latest/v1', 'community takeovers')

    async def _fetch_feed(self, path: str, label: str) -> List[Dict]:
        data = await self.fetcher.fetch(
            f"{self.base_url}{path}",
            timeout=self.feed_timeout,
            retries=self.feed_retries,
        )
        if isinstance(data, list):
            logger.info(f"[DEXSCREENER] Fetched {len(data)} {label}")
            return data
        return []

    async def fetch_token_pair(self, chain: str, token_address: str) -> Optional[Dict]:
        """
        Most liquid pair of a token on `chain`.

        Returns:
            Raw pair dict or None if not found
        """
        data = await self.fetcher.fetch(
            f"{self.base_url}/latest/dex/tokens/{token_address}",
            timeout=self.search_timeout,
            retries=self.search_retries,
        )
        if not data or not isinstance(data.get('pairs'), list):
            return None

        chain = chain.lower()
        pairs = [p for p in data['pairs'] if (p.get('chainId') or '').lower() == chain]
        if not pairs:
            return None

        return max(pairs, key=lambda p: float((p.get('liquidity') or {}).get('usd', 0) or 0))

    async def fetch_candles(self, chain: str, pair_address: str,
                            timeframe: str = '1h', limit: int = 100) -> List[Dict]:
        """
        Historical candles for a pair.

        Returns:
            List of {time, open, high, low, close, volume}; [] if unavailable
        """
        data = await self.fetcher.fetch(
            f"{self.base_url}/prices/history/{chain}/{pair_address}",
            params={'from': timeframe, 'limit': str(limit)},
            timeout=self.feed_timeout,
            retries=2,
        )
        if data and isinstance(data.get('candles'), list):
            logger.info(f"[DEXSCREENER] Fetched {len(data['candles'])} candles for {pair_address[:8]}...")
            return data['candles']
        return []

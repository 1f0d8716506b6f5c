"""
TOKEN SECURITY CHECKER

Collects the security signals the public APIs report for a token:
- Mint / freeze authority and supply (Solscan token meta)
- Top-10 holder concentration (Birdeye token holders)
- Liquidity lock heuristic (FDV/liquidity ratio)

Nothing here is verified on-chain.
"""

import logging
from typing import Dict, List

from .fetcher import ResilientFetcher
from .models import MarketSnapshot, TokenSecurity

logger = logging.getLogger(__name__)


class SecurityCheckError(Exception):
    """Security signals could not be collected for a token."""


class SecurityChecker:
    """
    Queries token metadata and holder distribution.

    `unlocked_ratio` is shared with the safety filter's FDV/liquidity warning
    threshold so both modules flag the same tokens.
    """

    SOLSCAN_URL = "https://api.solscan.io/token/meta"
    BIRDEYE_URL = "https://public-api.birdeye.so/public/token_holder"

    def __init__(self, metadata_fetcher: ResilientFetcher, holders_fetcher: ResilientFetcher,
                 config: Dict = None):
        self.metadata_fetcher = metadata_fetcher
        self.holders_fetcher = holders_fetcher
        self.config = config or {}
        self.unlocked_ratio = self.config.get('fdv_ratio_warn', 100)
        self.holder_limit = self.config.get('holder_limit', 20)

    async def check(self, snapshot: MarketSnapshot) -> TokenSecurity:
        """
        Raises:
            SecurityCheckError: token metadata unavailable
        """
        mint = snapshot.token_address
        metadata = await self.metadata_fetcher.fetch(
            self.config.get('solscan_url', self.SOLSCAN_URL),
            params={'token': mint},
            timeout=8.0,
            retries=2,
        )
        if not isinstance(metadata, dict):
            raise SecurityCheckError(f"Token metadata unavailable for {mint}")

        # Some responses wrap the payload in {"data": {...}}
        if isinstance(metadata.get('data'), dict):
            metadata = metadata['data']

        security = TokenSecurity()
        security.mint_authority_enabled = metadata.get('mintAuthority') not in (None, '')
        security.freeze_authority_enabled = metadata.get('freezeAuthority') not in (None, '')
        security.total_supply = self._to_float(metadata.get('supply'))

        locked, percent = self._liquidity_lock(snapshot)
        security.liquidity_locked = locked
        security.liquidity_locked_percent = percent

        if security.total_supply > 0:
            holders = await self._fetch_holders(mint)
            security.top10_holder_percent = self.top10_percent(holders, security.total_supply)

        security.checked = True

        logger.debug(f"Security check for {snapshot.symbol}:")
        logger.debug(f"  - Mint Authority: {'ENABLED (RISK!)' if security.mint_authority_enabled else 'Disabled (Safe)'}")
        logger.debug(f"  - Freeze Authority: {'ENABLED' if security.freeze_authority_enabled else 'Disabled'}")
        logger.debug(f"  - Liquidity Locked: {'Yes' if security.liquidity_locked else 'No'} ({security.liquidity_locked_percent:.1f}%)")
        logger.debug(f"  - Top 10 Holders: {security.top10_holder_percent:.1f}%")

        return security

    def _liquidity_lock(self, snapshot: MarketSnapshot):
        if snapshot.fdv_usd > 0 and snapshot.liquidity_usd > 0:
            if snapshot.fdv_usd / snapshot.liquidity_usd > self.unlocked_ratio:
                return False, 0.0
        return True, 95.0

    async def _fetch_holders(self, mint: str) -> List[Dict]:
        data = await self.holders_fetcher.fetch(
            self.config.get('birdeye_url', self.BIRDEYE_URL),
            params={'token': mint, 'limit': str(self.holder_limit)},
            timeout=8.0,
            retries=2,
        )
        if not isinstance(data, dict):
            return []
        holders = (data.get('data') or {}).get('list') or []
        return [h for h in holders if isinstance(h, dict)]

    @classmethod
    def top10_percent(cls, holders: List[Dict], total_supply: float) -> float:
        """Share of supply held by the 10 largest holders, in percent."""
        if total_supply <= 0 or not holders:
            return 0.0
        top10 = sum(cls._to_float(h.get('amount')) for h in holders[:10])
        return top10 / total_supply * 100

    @staticmethod
    def _to_float(value) -> float:
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0

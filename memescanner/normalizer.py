"""
PAIR NORMALIZER

Converts raw DexScreener responses into the scanner's data model:
- search / pair payloads -> MarketSnapshot
- boost / takeover feed entries -> TrendingToken (tagged by TrendingKind)

Shape inspection happens once here; downstream code only looks at `kind`.
"""

from typing import Dict, Optional

from .models import MarketSnapshot, TrendingKind, TrendingToken


class PairNormalizer:
    """Normalizes DexScreener payloads into scanner dataclasses."""

    def normalize_pair(self, raw_pair: Dict) -> Optional[MarketSnapshot]:
        """
        Normalize one DexScreener pair object.

        Returns:
            MarketSnapshot, or None when the pair has no base token address
        """
        if not isinstance(raw_pair, dict):
            return None

        base_token = self._section(raw_pair, 'baseToken')
        token_address = base_token.get('address', '')
        if not token_address:
            return None

        liquidity = self._section(raw_pair, 'liquidity')
        volume = self._section(raw_pair, 'volume')
        price_change = self._section(raw_pair, 'priceChange')

        fdv = self._safe_float(raw_pair.get('fdv'))
        if not fdv:
            fdv = self._safe_float(raw_pair.get('marketCap'))

        created_at = raw_pair.get('pairCreatedAt')
        created_at_ms = int(created_at) if isinstance(created_at, (int, float)) and created_at > 0 else None

        return MarketSnapshot(
            token_address=token_address,
            symbol=base_token.get('symbol') or 'UNKNOWN',
            name=base_token.get('name') or 'UNKNOWN',
            liquidity_usd=self._safe_float(liquidity.get('usd')),
            volume_5m_usd=self._safe_float(volume.get('m5')),
            volume_24h_usd=self._safe_float(volume.get('h24')),
            price_usd=self._safe_float(raw_pair.get('priceUsd')),
            fdv_usd=fdv,
            price_change_5m=self._safe_float(price_change.get('m5')),
            price_change_1h=self._safe_float(price_change.get('h1')),
            price_change_24h=self._safe_float(price_change.get('h24')),
            created_at_ms=created_at_ms,
            chain_id=(raw_pair.get('chainId') or 'unknown').lower(),
            dex_id=(raw_pair.get('dexId') or '').lower(),
            pair_address=raw_pair.get('pairAddress', ''),
            url=raw_pair.get('url', ''),
        )

    def normalize_trending(self, raw: Dict, kind: TrendingKind) -> Optional[TrendingToken]:
        """
        Normalize one entry of the boosts / takeovers feeds.

        Args:
            raw: Raw feed entry
            kind: Feed the entry came from
        """
        if not isinstance(raw, dict):
            return None

        token_address = raw.get('tokenAddress', '')
        if not token_address:
            return None

        token = TrendingToken(
            kind=kind,
            chain_id=(raw.get('chainId') or 'unknown').lower(),
            token_address=token_address,
            url=raw.get('url', ''),
            description=raw.get('description') or '',
            symbol=self._symbol_from_links(raw.get('links')),
        )

        if kind.is_boost:
            boosts = self._section(raw, 'boosts')
            price_change = self._section(raw, 'priceChange')
            token.price_usd = self._optional_float(raw.get('price'))
            token.market_cap_usd = self._optional_float(raw.get('marketCap'))
            token.liquidity_usd = self._optional_float(raw.get('liquidity'))
            token.price_change_24h = self._optional_float(price_change.get('h24'))
            token.active_boosts = int(self._safe_float(boosts.get('active')))
            token.boost_rank = boosts.get('rank')
        else:
            token.claim_date = raw.get('claimDate')

        return token

    @staticmethod
    def _section(raw: Dict, key: str) -> Dict:
        """Nested object of a payload, {} when missing or not an object."""
        value = raw.get(key)
        return value if isinstance(value, dict) else {}

    @staticmethod
    def _symbol_from_links(links) -> Optional[str]:
        for link in links or []:
            if isinstance(link, dict) and link.get('type') == 'symbol' and link.get('label'):
                return link['label']
        return None

    @staticmethod
    def _safe_float(value, default: float = 0.0) -> float:
        """Safely convert to float."""
        if value is None:
            return default
        try:
            return float(value)
        except (ValueError, TypeError):
            return default

    @classmethod
    def _optional_float(cls, value) -> Optional[float]:
        if value is None:
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            return None

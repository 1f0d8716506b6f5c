"""
DATA MODEL

Shared dataclasses and enums for the scanner pipeline.

Timestamps are epoch milliseconds (DexScreener reports pairCreatedAt in ms).
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def now_ms() -> int:
    """Current wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time market read for one token pair. Produced fresh each poll."""
    token_address: str
    symbol: str
    name: str
    liquidity_usd: float = 0.0
    volume_5m_usd: float = 0.0
    volume_24h_usd: float = 0.0
    price_usd: float = 0.0
    fdv_usd: float = 0.0
    price_change_5m: float = 0.0
    price_change_1h: float = 0.0
    price_change_24h: float = 0.0
    created_at_ms: Optional[int] = None
    chain_id: str = "solana"
    dex_id: str = ""
    pair_address: str = ""
    url: str = ""

    @property
    def token_key(self) -> str:
        """Logical token identity (chain + address)."""
        return f"{self.chain_id.lower()}:{self.token_address}"

    @property
    def market_cap_usd(self) -> float:
        return self.fdv_usd

    def age_minutes(self, current_ms: Optional[int] = None) -> Optional[float]:
        """Pair age in minutes, or None when the creation time is unknown."""
        if not self.created_at_ms:
            return None
        current_ms = now_ms() if current_ms is None else current_ms
        return (current_ms - self.created_at_ms) / 60000


@dataclass
class SeenEntry:
    """Seen-cache record, created on first successful gating."""
    token_key: str
    first_seen_ms: int
    created_at_ms: int = 0

    def to_dict(self) -> Dict:
        return {
            'first_seen_ms': self.first_seen_ms,
            'created_at_ms': self.created_at_ms,
        }

    @classmethod
    def from_dict(cls, token_key: str, data: Dict) -> "SeenEntry":
        return cls(
            token_key=token_key,
            first_seen_ms=int(data.get('first_seen_ms', 0)),
            created_at_ms=int(data.get('created_at_ms', 0) or 0),
        )


@dataclass
class TokenSecurity:
    """Security signals reported by the queried APIs."""
    mint_authority_enabled: bool = False
    freeze_authority_enabled: bool = False
    liquidity_locked: bool = False
    liquidity_locked_percent: float = 0.0
    top10_holder_percent: float = 0.0
    total_supply: float = 0.0
    checked: bool = False


@dataclass(frozen=True)
class FilterStats:
    liquidity: float
    volume_5m: float
    volume_24h: float
    price_change: float


@dataclass(frozen=True)
class FilterVerdict:
    """Outcome of one filter evaluation. Never mutated after creation."""
    passed: bool
    stats: FilterStats
    reason: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    security: Optional[TokenSecurity] = None


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"        # Normal operation
    OPEN = "OPEN"            # Short-circuit all calls
    HALF_OPEN = "HALF_OPEN"  # Single trial call allowed


@dataclass
class PricePoint:
    price: float
    volume: float
    timestamp_ms: int


@dataclass
class TokenHistory:
    """Rolling price/volume history of one token."""
    address: str
    first_seen_ms: int
    last_seen_ms: int
    points: List[PricePoint] = field(default_factory=list)
    historical_loaded: bool = False

    @property
    def prices(self) -> List[float]:
        return [p.price for p in self.points]

    @property
    def volumes(self) -> List[float]:
        return [p.volume for p in self.points]


class StrategyType(Enum):
    """Pattern detectors run by the strategy engine."""
    VOLUME_SPIKE = "VOLUME_SPIKE"
    MOMENTUM_BACK = "MOMENTUM_BACK"
    FRESH_TOKEN = "FRESH_TOKEN"


@dataclass
class StrategyResult:
    strategy: StrategyType
    triggered: bool
    message: str
    details: Optional[Dict[str, Any]] = None


class TrendingKind(Enum):
    """Source feed of a trending entry."""
    BOOST = "boost"          # Latest boosts feed
    TOP_BOOST = "top"        # Top boosts feed
    TAKEOVER = "takeover"    # Community takeovers feed

    @property
    def is_boost(self) -> bool:
        return self in (TrendingKind.BOOST, TrendingKind.TOP_BOOST)


@dataclass
class TrendingToken:
    """
    One entry of the trending feeds, resolved to an explicit variant at
    ingestion. Boost-only fields stay None for takeovers and vice versa.
    """
    kind: TrendingKind
    chain_id: str
    token_address: str
    url: str = ""
    description: str = ""
    symbol: Optional[str] = None
    # Boost variant
    price_usd: Optional[float] = None
    market_cap_usd: Optional[float] = None
    liquidity_usd: Optional[float] = None
    price_change_24h: Optional[float] = None
    active_boosts: int = 0
    boost_rank: Optional[int] = None
    # Takeover variant
    claim_date: Optional[str] = None

    @property
    def token_key(self) -> str:
        return f"{self.chain_id.lower()}:{self.token_address}"

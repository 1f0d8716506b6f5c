"""
TOKEN DATABASE - JSON-backed long-term token records and alert log

Layout of data/tokens.json:
    {
      "version": 1,
      "last_updated": "...",
      "tokens": {address: TokenRecord},
      "alerts": [AlertRecord, ...]
    }

Histories are capped at 100 values, per-token alert labels at 50 and the
alert log at 1000 entries. Records not seen for 24h are dropped by
cleanup_old_tokens().
"""

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
TOKEN_ALERT_LIMIT = 50
ALERT_LIMIT = 1000


@dataclass
class TokenRecord:
    address: str
    symbol: str = "UNKNOWN"
    name: str = "Unknown Token"
    first_seen_ms: int = 0
    last_seen_ms: int = 0
    price_history: List[float] = field(default_factory=list)
    volume_history: List[float] = field(default_factory=list)
    liquidity_history: List[float] = field(default_factory=list)
    market_cap_history: List[float] = field(default_factory=list)
    alerts: List[str] = field(default_factory=list)
    max_price: float = 0.0
    min_price: float = 0.0
    total_volume: float = 0.0

    @property
    def price_change_percent(self) -> float:
        """Change between first and last recorded price."""
        if len(self.price_history) < 2 or not self.price_history[0]:
            return 0.0
        first, last = self.price_history[0], self.price_history[-1]
        return (last - first) / first * 100

    @classmethod
    def from_dict(cls, data: Dict) -> "TokenRecord":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class AlertRecord:
    id: str
    token_address: str
    type: str
    timestamp_ms: int
    details: Optional[Dict[str, Any]] = None


class TokenDatabase:
    """
    Durable token records and alert log.

    Saved on alert insert, on cleanup and on flush(); plain token updates
    only mark the database dirty.
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = time.time):
        self.config = config or {}
        self.db_file = Path(self.config.get('db_path', 'data')) / self.config.get('db_file', 'tokens.json')
        self.max_age_hours = self.config.get('max_age_hours', 24)
        self._clock = clock

        self.tokens: Dict[str, TokenRecord] = {}
        self.alerts: List[AlertRecord] = []
        self._dirty = False

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> None:
        """Load database from file; start empty when missing or unreadable."""
        try:
            if self.db_file.exists():
                with open(self.db_file, 'r') as f:
                    data = json.load(f)
                self.tokens = {
                    address: TokenRecord.from_dict(record)
                    for address, record in data.get('tokens', {}).items()
                }
                self.alerts = [AlertRecord(**a) for a in data.get('alerts', [])]
                logger.info(f"📂 Database loaded: {len(self.tokens)} tokens, {len(self.alerts)} alerts")
            else:
                logger.info("📂 New database created")
                self.save()
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load database: {e}")
            self.tokens = {}
            self.alerts = []

    def save(self) -> None:
        try:
            self.db_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                'version': 1,
                'last_updated': datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
                'tokens': {address: asdict(record) for address, record in self.tokens.items()},
                'alerts': [asdict(a) for a in self.alerts],
            }
            with open(self.db_file, 'w') as f:
                json.dump(data, f, indent=2)
            self._dirty = False
            logger.debug("💾 Database saved")
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save database: {e}")

    def flush(self) -> None:
        """Persist pending token updates."""
        if self._dirty:
            self.save()

    def update_token(self, address: str, symbol: str = None, name: str = None,
                     price: float = None, volume: float = None,
                     liquidity: float = None, market_cap: float = None) -> TokenRecord:
        now = self._now_ms()
        record = self.tokens.get(address)
        if record is None:
            record = TokenRecord(
                address=address,
                first_seen_ms=now,
                max_price=price or 0.0,
                min_price=price or 0.0,
            )
            self.tokens[address] = record

        record.last_seen_ms = now

        if price is not None:
            self._append_capped(record.price_history, price)
            if price > record.max_price:
                record.max_price = price
            if price < record.min_price or record.min_price == 0:
                record.min_price = price

        if volume is not None:
            self._append_capped(record.volume_history, volume)
            record.total_volume += volume

        if liquidity is not None:
            self._append_capped(record.liquidity_history, liquidity)

        if market_cap is not None:
            self._append_capped(record.market_cap_history, market_cap)

        if symbol:
            record.symbol = symbol
        if name:
            record.name = name

        self._dirty = True
        return record

    @staticmethod
    def _append_capped(values: List[float], value: float):
        values.append(value)
        if len(values) > HISTORY_LIMIT:
            del values[:-HISTORY_LIMIT]

    def add_alert(self, address: str, alert_type: str, details: Dict = None) -> AlertRecord:
        now = self._now_ms()
        alert = AlertRecord(
            id=f"{address}-{now}",
            token_address=address,
            type=alert_type,
            timestamp_ms=now,
            details=details,
        )
        self.alerts.append(alert)
        if len(self.alerts) > ALERT_LIMIT:
            self.alerts = self.alerts[-ALERT_LIMIT:]

        record = self.tokens.get(address)
        if record is not None:
            stamp = datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat()
            record.alerts.append(f"{alert_type} at {stamp}")
            if len(record.alerts) > TOKEN_ALERT_LIMIT:
                record.alerts = record.alerts[-TOKEN_ALERT_LIMIT:]

        self.save()
        return alert

    def get_token(self, address: str) -> Optional[TokenRecord]:
        return self.tokens.get(address)

    def get_recent_alerts(self, limit: int = 20) -> List[AlertRecord]:
        return sorted(self.alerts, key=lambda a: a.timestamp_ms, reverse=True)[:limit]

    def get_top_performers(self, limit: int = 10) -> List[TokenRecord]:
        with_prices = [t for t in self.tokens.values() if t.price_history]
        return sorted(with_prices, key=lambda t: t.price_change_percent, reverse=True)[:limit]

    def cleanup_old_tokens(self) -> int:
        """Drop records not seen for `max_age_hours`."""
        cutoff = self._now_ms() - self.max_age_hours * 3600 * 1000
        stale = [address for address, t in self.tokens.items() if t.last_seen_ms < cutoff]
        for address in stale:
            del self.tokens[address]

        if stale:
            logger.info(f"🧹 Cleaned up {len(stale)} old tokens from database")
            self.save()
        return len(stale)

    def get_stats(self) -> Dict:
        return {
            'total_tokens': len(self.tokens),
            'total_alerts': len(self.alerts),
            'file_path': str(self.db_file),
            'top_performers': [
                {
                    'symbol': t.symbol,
                    'address': t.address[:8] + '...',
                    'price_change': f"{t.price_change_percent:.2f}%" if len(t.price_history) > 1 else 'N/A',
                    'total_volume': t.total_volume,
                }
                for t in self.get_top_performers(5)
            ],
        }

"""
STRATEGY ENGINE

Keeps a rolling price/volume history per token and runs three detectors
on every observed snapshot:

- VOLUME_SPIKE:  24h volume >= 3x the recent average with the price moving up
- MOMENTUM_BACK: pullback from the recent high followed by a recovery
- FRESH_TOKEN:   newly tracked token with strong liquidity/volume/market cap

Detectors are pure functions of (history, snapshot); the engine owns
history mutation, re-alert cooldown and alert recording.
"""

import asyncio
import logging
import time
from html import escape
from typing import Callable, Dict, List, Optional

from .database import TokenDatabase
from .dex_screener import DexScreenerAPI
from .formatting import SEPARATOR, format_number, format_percent
from .models import MarketSnapshot, PricePoint, StrategyResult, StrategyType, TokenHistory

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_CONFIG = {
    'enabled': True,
    'min_volume_spike': 3,          # x above average volume
    'min_price_change_percent': 5,  # 1h change required for a volume spike
    'min_momentum_percent': 10,     # recovery from the recent low
    'min_pullback_percent': 5,
    'max_pullback_percent': 40,
    'use_historical_data': True,
    'history_limit': 200,
    'history_ttl_minutes': 30,
    'alert_cooldown_minutes': 0,    # 0 disables
}

VOLUME_SPIKE_MIN_POINTS = 5
VOLUME_AVERAGE_WINDOW = 20
MOMENTUM_MIN_POINTS = 10
MOMENTUM_WINDOW = 10
FRESH_MAX_POINTS = 5
FRESH_MIN_LIQUIDITY = 1000
FRESH_MIN_VOLUME_24H = 2000
FRESH_MIN_MARKET_CAP = 30000
FRESH_MIN_PRICE_CHANGE_24H = 10


def _token_label(snapshot: MarketSnapshot) -> str:
    return f"{escape(snapshot.symbol)} ({escape(snapshot.token_address[:8])}...)"


def detect_volume_spike(history: Optional[TokenHistory], snapshot: MarketSnapshot,
                        config: Dict = None) -> StrategyResult:
    """Current 24h volume against the average of the last 20 points."""
    cfg = {**DEFAULT_STRATEGY_CONFIG, **(config or {})}

    if history is None or len(history.points) < VOLUME_SPIKE_MIN_POINTS:
        return StrategyResult(StrategyType.VOLUME_SPIKE, False, 'Insufficient data')

    volumes = history.volumes[-min(VOLUME_AVERAGE_WINDOW, len(history.volumes)):]
    avg_volume = sum(volumes) / len(volumes)
    current_volume = snapshot.volume_24h_usd
    ratio = current_volume / avg_volume if avg_volume > 0 else 0.0
    price_change = snapshot.price_change_1h

    details = {
        'current_volume': current_volume,
        'avg_volume': avg_volume,
        'ratio': ratio,
        'price_change': price_change,
    }

    if avg_volume <= 0 or current_volume < cfg['min_volume_spike'] * avg_volume:
        return StrategyResult(StrategyType.VOLUME_SPIKE, False, 'No volume spike', details)

    if price_change < cfg['min_price_change_percent']:
        return StrategyResult(StrategyType.VOLUME_SPIKE, False, 'Price not moving up enough', details)

    message = "\n".join([
        "🔥 <b>VOLUME SPIKE</b>",
        SEPARATOR,
        "",
        f"<b>Token:</b> {_token_label(snapshot)}",
        f"<b>Current Volume:</b> ${format_number(current_volume)}",
        f"<b>Average Volume:</b> ${format_number(avg_volume)}",
        f"<b>Spike:</b> {ratio:.1f}x",
        f"<b>Price Change:</b> {format_percent(price_change)}",
        "",
        "<i>⚠️ High volume + price increase = Potential pump!</i>",
    ])
    return StrategyResult(StrategyType.VOLUME_SPIKE, True, message, details)


def detect_momentum_back(history: Optional[TokenHistory], snapshot: MarketSnapshot,
                         config: Dict = None) -> StrategyResult:
    """Pullback from the last-10 high, then recovery from the last-10 low."""
    cfg = {**DEFAULT_STRATEGY_CONFIG, **(config or {})}

    if history is None or len(history.points) < MOMENTUM_MIN_POINTS:
        return StrategyResult(StrategyType.MOMENTUM_BACK, False, 'Insufficient data')

    window = history.prices[-MOMENTUM_WINDOW:]
    high = max(window)
    low = min(window)
    current = snapshot.price_usd

    if high <= 0 or low <= 0:
        return StrategyResult(StrategyType.MOMENTUM_BACK, False, 'Invalid price history')

    pullback = (high - current) / high * 100
    recovery = (current - low) / low * 100
    change_1h = snapshot.price_change_1h
    change_24h = snapshot.price_change_24h

    details = {
        'pullback_percent': pullback,
        'recovery_percent': recovery,
        'price_change_1h': change_1h,
        'price_change_24h': change_24h,
    }

    if pullback < cfg['min_pullback_percent'] or pullback > cfg['max_pullback_percent']:
        return StrategyResult(StrategyType.MOMENTUM_BACK, False, 'No valid pullback pattern', details)

    if recovery < cfg['min_momentum_percent']:
        return StrategyResult(StrategyType.MOMENTUM_BACK, False, 'Not enough recovery', details)

    if change_1h < 2 and change_24h < 5:
        return StrategyResult(StrategyType.MOMENTUM_BACK, False, 'Price not moving enough', details)

    message = "\n".join([
        "📈 <b>MOMENTUM BACK</b>",
        SEPARATOR,
        "",
        f"<b>Token:</b> {_token_label(snapshot)}",
        f"<b>Current Price:</b> ${current:g}",
        f"<b>From ATH:</b> -{pullback:.1f}%",
        f"<b>Recovery:</b> +{recovery:.1f}%",
        f"<b>1h Change:</b> {format_percent(change_1h)}",
        f"<b>24h Change:</b> {format_percent(change_24h)}",
        "",
        "<i>🚀 Pattern: Pullback + Recovery = Potential continuation!</i>",
    ])
    return StrategyResult(StrategyType.MOMENTUM_BACK, True, message, details)


def detect_fresh_token(history: Optional[TokenHistory], snapshot: MarketSnapshot,
                       config: Dict = None) -> StrategyResult:
    """Only for tokens with at most 5 tracked points."""
    if history is None or len(history.points) > FRESH_MAX_POINTS:
        return StrategyResult(StrategyType.FRESH_TOKEN, False, 'Not a fresh token')

    liquidity = snapshot.liquidity_usd
    volume_24h = snapshot.volume_24h_usd
    market_cap = snapshot.market_cap_usd
    change_24h = snapshot.price_change_24h

    details = {
        'liquidity': liquidity,
        'volume_24h': volume_24h,
        'market_cap': market_cap,
        'price_change_24h': change_24h,
    }

    if liquidity < FRESH_MIN_LIQUIDITY:
        return StrategyResult(StrategyType.FRESH_TOKEN, False, 'Low liquidity', details)
    if volume_24h < FRESH_MIN_VOLUME_24H:
        return StrategyResult(StrategyType.FRESH_TOKEN, False, 'Low volume', details)
    if market_cap < FRESH_MIN_MARKET_CAP:
        return StrategyResult(StrategyType.FRESH_TOKEN, False, 'Low market cap', details)
    if change_24h < FRESH_MIN_PRICE_CHANGE_24H:
        return StrategyResult(StrategyType.FRESH_TOKEN, False, 'Not enough price movement', details)

    message = "\n".join([
        "🆕 <b>FRESH TOKEN</b>",
        SEPARATOR,
        "",
        f"<b>Token:</b> {_token_label(snapshot)}",
        f"<b>Liquidity:</b> ${format_number(liquidity)}",
        f"<b>24h Volume:</b> ${format_number(volume_24h)}",
        f"<b>Market Cap:</b> ${format_number(market_cap)}",
        f"<b>24h Change:</b> {format_percent(change_24h)}",
        "",
        "<i>🆕 Newly detected with strong metrics!</i>",
    ])
    return StrategyResult(StrategyType.FRESH_TOKEN, True, message, details)


DETECTORS = (detect_volume_spike, detect_momentum_back, detect_fresh_token)


class StrategyEngine:
    """
    Stateful pattern detection over observed snapshots.

    Usage:
        engine = StrategyEngine(config['strategies'], api=dex_api, database=db)
        for result in await engine.analyze(snapshot):
            await notifier.send_message(result.message)
    """

    def __init__(self, config: Dict = None, api: Optional[DexScreenerAPI] = None,
                 database: Optional[TokenDatabase] = None,
                 clock: Callable[[], float] = time.time):
        self.config = {**DEFAULT_STRATEGY_CONFIG, **(config or {})}
        self.api = api
        self.database = database
        self._clock = clock

        self.enabled = self.config['enabled']
        self.history_limit = self.config['history_limit']
        self.history_ttl_ms = self.config['history_ttl_minutes'] * 60 * 1000
        self.cooldown_ms = self.config['alert_cooldown_minutes'] * 60 * 1000

        self._histories: Dict[str, TokenHistory] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_alert: Dict[tuple, int] = {}

        self.stats = {
            'analyzed': 0,
            'triggered': 0,
            'suppressed': 0,
            'backfilled': 0,
        }

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get_history(self, token_key: str) -> Optional[TokenHistory]:
        return self._histories.get(token_key)

    async def analyze(self, snapshot: MarketSnapshot) -> List[StrategyResult]:
        """
        Update the token's history, then run every detector.

        Returns:
            Triggered results only (after the re-alert cooldown)
        """
        if not self.enabled:
            return []

        self.stats['analyzed'] += 1
        key = snapshot.token_key
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            history = await self._update_history(snapshot)
            results = [detector(history, snapshot, self.config) for detector in DETECTORS]

        if self.database is not None:
            self.database.update_token(
                snapshot.token_address,
                symbol=snapshot.symbol,
                name=snapshot.name,
                price=snapshot.price_usd,
                volume=snapshot.volume_24h_usd,
                liquidity=snapshot.liquidity_usd,
                market_cap=snapshot.market_cap_usd,
            )

        triggered = []
        for result in results:
            if not result.triggered:
                continue

            self.stats['triggered'] += 1
            logger.info(f"🎯 {result.strategy.value} detected for {snapshot.symbol} ({snapshot.token_address[:8]}...)")
            if self.database is not None:
                self.database.add_alert(snapshot.token_address, result.strategy.value, result.details)

            if self._in_cooldown(key, result.strategy):
                self.stats['suppressed'] += 1
                logger.debug(f"[STRATEGY] {result.strategy.value} for {snapshot.symbol} in cooldown, message held back")
                continue

            self._last_alert[(key, result.strategy)] = self._now_ms()
            triggered.append(result)

        self._evict_stale()
        return triggered

    def _in_cooldown(self, key: str, strategy: StrategyType) -> bool:
        if self.cooldown_ms <= 0:
            return False
        last = self._last_alert.get((key, strategy))
        return last is not None and self._now_ms() - last < self.cooldown_ms

    async def _update_history(self, snapshot: MarketSnapshot) -> TokenHistory:
        now = self._now_ms()
        key = snapshot.token_key
        history = self._histories.get(key)

        if history is None:
            history = TokenHistory(address=snapshot.token_address, first_seen_ms=now, last_seen_ms=now)
            self._histories[key] = history

            if self.config['use_historical_data']:
                points = await self._load_historical(snapshot)
                if points:
                    history.points = points[-self.history_limit:]
                    history.historical_loaded = True
                    self.stats['backfilled'] += 1

        last = history.points[-1] if history.points else None
        if last is None or last.price != snapshot.price_usd:
            history.points.append(PricePoint(
                price=snapshot.price_usd,
                volume=snapshot.volume_24h_usd,
                timestamp_ms=now,
            ))
        history.last_seen_ms = now

        if len(history.points) > self.history_limit:
            history.points = history.points[-self.history_limit:]

        return history

    async def _load_historical(self, snapshot: MarketSnapshot) -> List[PricePoint]:
        """Best-effort candle backfill; [] when unavailable."""
        if self.api is None:
            return []

        pair_address = snapshot.pair_address or snapshot.token_address
        try:
            candles = await self.api.fetch_candles(snapshot.chain_id, pair_address, '1h', 100)
        except Exception as e:
            logger.warning(f"Failed to load historical data for {snapshot.token_address[:8]}...: {e}")
            return []

        points = []
        for candle in candles:
            if not isinstance(candle, dict):
                continue
            try:
                points.append(PricePoint(
                    price=float(candle['close']),
                    volume=float(candle.get('volume') or 0),
                    timestamp_ms=int(candle['time']) * 1000,
                ))
            except (KeyError, TypeError, ValueError):
                continue

        if points:
            logger.info(f"📊 Loaded {len(points)} historical candles for {snapshot.token_address[:8]}...")
        return points

    def _evict_stale(self) -> int:
        """Drop histories not seen for `history_ttl_minutes`."""
        cutoff = self._now_ms() - self.history_ttl_ms
        stale = [key for key, h in self._histories.items() if h.last_seen_ms < cutoff]
        for key in stale:
            del self._histories[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]

        expired_alerts = [k for k, ts in self._last_alert.items() if ts < self._now_ms() - self.cooldown_ms]
        for k in expired_alerts:
            del self._last_alert[k]

        return len(stale)

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'tracked_tokens': len(self._histories),
            'strategies': {
                'volume_spike': f"{self.config['min_volume_spike']}x",
                'momentum_back': f"{self.config['min_momentum_percent']}% recovery",
                'fresh_token': 'Newly tracked tokens',
                'use_historical_data': self.config['use_historical_data'],
            },
        }

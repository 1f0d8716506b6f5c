"""
SAFETY FILTER

Ordered short-circuit pipeline over a MarketSnapshot. The first failing
stage sets the verdict reason; later stages do not run.

  1. Banned words (symbol / name)
  2. Liquidity floor
  3. 5m volume floor
  4. 24h volume floor (pairs older than 60 min only)
  5. FDV / liquidity ratio (reject > 1000x, warn > 100x)
  6. Honeypot pattern (pump > 300% on < $1k 5m volume)
  7. Warnings only

evaluate() is pure given the clock. evaluate_with_security() layers the
optional SecurityChecker stage on top of a passing verdict.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from .formatting import format_currency
from .models import FilterStats, FilterVerdict, MarketSnapshot
from .security import SecurityChecker

logger = logging.getLogger(__name__)

DEFAULT_BANNED_WORDS = ['scam', 'rug', 'honeypot', 'test', 'fake']


class SafetyFilter:
    """
    Multi-stage token safety filter.
    """

    # Young pairs are exempt from the 24h volume floor
    VOLUME_24H_MIN_AGE_MINUTES = 60
    HOLDER_WARNING_PERCENT = 20

    def __init__(self, config: Dict = None, security_checker: Optional[SecurityChecker] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or {}
        self.security_checker = security_checker
        self._clock = clock

        self.min_liquidity = self.config.get('min_liquidity', 300)
        self.min_volume_5m = self.config.get('min_volume_5m', 50)
        self.min_volume_24h = self.config.get('min_volume_24h', 1000)
        self.banned_words = [w.lower() for w in self.config.get('banned_words', DEFAULT_BANNED_WORDS) if w]
        self.fdv_ratio_reject = self.config.get('fdv_ratio_reject', 1000)
        self.fdv_ratio_warn = self.config.get('fdv_ratio_warn', 100)

        self.enable_mint_authority_check = self.config.get('enable_mint_authority_check', True)
        self.enable_liquidity_lock_check = self.config.get('enable_liquidity_lock_check', True)
        self.enable_holder_distribution_check = self.config.get('enable_holder_distribution_check', True)
        self.max_holder_concentration = self.config.get('max_holder_concentration', 50)

        # Stats (never influence verdicts)
        self.stats = {
            'total_evaluated': 0,
            'passed': 0,
            'rejected': 0,
            'security_rejected': 0,
            'security_unknown': 0,
        }

    @property
    def security_enabled(self) -> bool:
        return self.security_checker is not None and (
            self.enable_mint_authority_check
            or self.enable_liquidity_lock_check
            or self.enable_holder_distribution_check
        )

    def evaluate(self, snapshot: MarketSnapshot) -> FilterVerdict:
        """Run the basic filter stages."""
        self.stats['total_evaluated'] += 1
        verdict = self._evaluate(snapshot)
        self.stats['passed' if verdict.passed else 'rejected'] += 1
        return verdict

    def _evaluate(self, snapshot: MarketSnapshot) -> FilterVerdict:
        symbol = snapshot.symbol
        liquidity = snapshot.liquidity_usd
        volume_5m = snapshot.volume_5m_usd
        volume_24h = snapshot.volume_24h_usd
        price_change = snapshot.price_change_5m
        age = snapshot.age_minutes(int(self._clock() * 1000))

        stats = FilterStats(
            liquidity=liquidity,
            volume_5m=volume_5m,
            volume_24h=volume_24h,
            price_change=price_change,
        )
        warnings: List[str] = []

        logger.info(f"🔍 Filtering: {symbol}")
        logger.debug(f"   Liquidity: {format_currency(liquidity)} | Vol 5m: {format_currency(volume_5m)} | Vol 24h: {format_currency(volume_24h)}")

        # 1. Banned words
        matches = self.check_banned_words(snapshot.symbol, snapshot.name)
        if matches:
            return self._reject(stats, symbol, f"Banned word detected: {', '.join(matches)}")

        # 2. Liquidity
        if liquidity < self.min_liquidity:
            return self._reject(stats, symbol, f"Low liquidity: {format_currency(liquidity)}")

        # 3. Volume 5m
        if volume_5m < self.min_volume_5m:
            return self._reject(stats, symbol, f"Low volume 5m: {format_currency(volume_5m)}")

        # 4. Volume 24h (older pairs only)
        if age is not None and age > self.VOLUME_24H_MIN_AGE_MINUTES and volume_24h < self.min_volume_24h:
            return self._reject(stats, symbol, f"Low volume 24h: {format_currency(volume_24h)}")

        # 5. FDV / liquidity ratio
        if snapshot.fdv_usd > 0 and liquidity > 0:
            ratio = snapshot.fdv_usd / liquidity
            if ratio > self.fdv_ratio_reject:
                return self._reject(stats, symbol, "Suspicious FDV/Liquidity ratio (Potential Scam)")
            if ratio > self.fdv_ratio_warn:
                warnings.append(f"⚠️ High FDV/Liquidity ratio: {ratio:.0f}x")

        # 6. Honeypot pattern
        if price_change > 300 and volume_5m < 1000:
            return self._reject(stats, symbol, "Honeypot pattern detected")

        # 7. Warnings
        if price_change > 300:
            warnings.append(f"⚠️ Extreme pump: +{price_change:.0f}%")
        elif price_change > 100:
            warnings.append(f"⚠️ High pump: +{price_change:.0f}%")

        if age is not None and age < 2:
            warnings.append("⚠️ Very new (<2m)")

        if liquidity < 1000:
            warnings.append("⚠️ Low liquidity")
        if volume_5m < 200:
            warnings.append("⚠️ Low volume 5m")
        if volume_24h < 5000:
            warnings.append("⚠️ Low volume 24h")

        logger.info(f"✅ {symbol} PASSED basic filters!")
        if warnings:
            logger.warning(f"⚠️ {symbol} has {len(warnings)} warning(s)")

        return FilterVerdict(passed=True, stats=stats, warnings=tuple(warnings))

    async def evaluate_with_security(self, snapshot: MarketSnapshot) -> FilterVerdict:
        """Basic stages, then the security stage for passing tokens."""
        verdict = self.evaluate(snapshot)
        if not verdict.passed or not self.security_enabled:
            return verdict

        symbol = snapshot.symbol
        warnings = list(verdict.warnings)

        try:
            logger.info(f"🔐 Performing security checks for {symbol}...")
            security = await self.security_checker.check(snapshot)
        except Exception as e:
            self.stats['security_unknown'] += 1
            logger.warning(f"⚠️ Security check failed for {symbol}, continuing... ({e})")
            warnings.append("⚠️ Security unknown")
            return FilterVerdict(passed=True, stats=verdict.stats, warnings=tuple(warnings))

        if self.enable_mint_authority_check and security.mint_authority_enabled:
            return self._security_reject(verdict, warnings, security, symbol,
                                         "Mint authority is enabled (can mint more tokens)")

        if self.enable_liquidity_lock_check and not security.liquidity_locked:
            warnings.append("⚠️ Liquidity NOT locked")
            logger.warning(f"⚠️ {symbol}: Liquidity is NOT locked")

        if self.enable_holder_distribution_check:
            top10 = security.top10_holder_percent
            if top10 > self.max_holder_concentration:
                return self._security_reject(verdict, warnings, security, symbol,
                                             f"High holder concentration: {top10:.1f}%")
            if top10 > self.HOLDER_WARNING_PERCENT:
                warnings.append(f"⚠️ High holder concentration: {top10:.1f}%")

        logger.info(f"✅ {symbol} PASSED security checks!")
        return FilterVerdict(passed=True, stats=verdict.stats, warnings=tuple(warnings), security=security)

    def check_banned_words(self, symbol: str, name: str) -> List[str]:
        """Banned words contained in symbol or name (case-insensitive)."""
        symbol_lower = (symbol or '').lower()
        name_lower = (name or '').lower()
        return [w for w in self.banned_words if w in symbol_lower or w in name_lower]

    def _reject(self, stats: FilterStats, symbol: str, reason: str) -> FilterVerdict:
        logger.warning(f"❌ {symbol} REJECTED: {reason}")
        return FilterVerdict(passed=False, stats=stats, reason=reason)

    def _security_reject(self, verdict: FilterVerdict, warnings: List[str], security,
                         symbol: str, reason: str) -> FilterVerdict:
        self.stats['security_rejected'] += 1
        logger.warning(f"❌ {symbol} REJECTED: {reason}")
        return FilterVerdict(
            passed=False,
            stats=verdict.stats,
            reason=reason,
            warnings=tuple(warnings),
            security=security,
        )

    def get_stats(self) -> Dict:
        return dict(self.stats)

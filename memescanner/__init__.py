"""
MEME SCANNER MODULE

Polls DexScreener for newly listed Solana tokens, filters them through
safety heuristics, tracks price/volume trajectory and alerts to Telegram.

Architecture:
  DexScreener keyword search / boosts / takeovers
          ↓
  RESILIENT FETCHER (circuit breaker, retry, request queue)
          ↓
  PAIR SOURCE (seen-cache, gates)
          ↓
  SAFETY FILTER (+ security checks)      STRATEGY ENGINE
          ↓                                     ↓
  TELEGRAM NOTIFIER  ←──────────────────────────┘
"""

from .fetcher import CircuitBreaker, FetchError, InvalidURLError, RequestQueue, ResilientFetcher, validate_url
from .dex_screener import DexScreenerAPI
from .normalizer import PairNormalizer
from .seen_cache import SeenCache
from .gates import LiquidityLockGate, RugCheckGate
from .scanner import PairSource
from .security import SecurityChecker, SecurityCheckError
from .filters import SafetyFilter
from .strategies import StrategyEngine
from .database import TokenDatabase
from .notifier import TelegramNotifier
from .trending import TrendingScanner
from .pipeline import ScanPipeline
from .scheduler import PollScheduler

__all__ = [
    'CircuitBreaker',
    'FetchError',
    'InvalidURLError',
    'RequestQueue',
    'ResilientFetcher',
    'validate_url',
    'DexScreenerAPI',
    'PairNormalizer',
    'SeenCache',
    'LiquidityLockGate',
    'RugCheckGate',
    'PairSource',
    'SecurityChecker',
    'SecurityCheckError',
    'SafetyFilter',
    'StrategyEngine',
    'TokenDatabase',
    'TelegramNotifier',
    'TrendingScanner',
    'ScanPipeline',
    'PollScheduler',
]

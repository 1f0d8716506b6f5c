"""
PAIR SOURCE

Produces the new Solana pairs of each poll tick:

    keyword searches -> normalize -> merge by token -> drop seen
        -> gate chain (age, liquidity lock, RugCheck) -> mark seen

Tokens that fail a gate are not marked seen and are re-evaluated on the
next tick.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Sequence

from .dex_screener import DexScreenerAPI
from .models import MarketSnapshot
from .normalizer import PairNormalizer
from .seen_cache import SeenCache

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_TERMS = ['pump', 'pepe', 'doge', 'moon', 'cat', 'inu', 'shib', 'solana', 'bonk', 'wif']

Gate = Callable[[MarketSnapshot], Awaitable[bool]]


class PairSource:
    """
    New-pair source backed by DexScreener keyword search.

    `last_observed` holds every snapshot seen in the latest tick (new or
    not); the strategy engine consumes it.
    """

    def __init__(self, api: DexScreenerAPI, seen_cache: SeenCache,
                 normalizer: PairNormalizer = None, gates: Sequence[Gate] = (),
                 config: Dict = None, clock: Callable[[], float] = time.time):
        self.api = api
        self.seen_cache = seen_cache
        self.normalizer = normalizer or PairNormalizer()
        self.gates = list(gates)
        self.config = config or {}
        self._clock = clock

        self.chain = self.config.get('chain', 'solana')
        self.search_terms = list(self.config.get('search_terms', DEFAULT_SEARCH_TERMS))
        self.max_age_minutes = self.config.get('max_age_minutes', 10)

        self.last_observed: List[MarketSnapshot] = []

        self.stats = {
            'ticks': 0,
            'observed': 0,
            'candidates': 0,
            'too_old': 0,
            'gated_out': 0,
            'gate_errors': 0,
            'malformed': 0,
            'new_pairs': 0,
        }

    async def fetch_new_pairs(self) -> List[MarketSnapshot]:
        """
        Run one discovery pass.

        Returns:
            Pairs that passed every gate this tick ([] on unexpected error)
        """
        self.stats['ticks'] += 1
        self.last_observed = []
        try:
            self.seen_cache.maybe_cleanup()

            observed = await self._search_all()
            self.last_observed = observed
            self.stats['observed'] += len(observed)

            candidates = [s for s in observed if s.token_key not in self.seen_cache]
            self.stats['candidates'] += len(candidates)
            if not candidates:
                return []

            results = await asyncio.gather(*(self._passes_gates(s) for s in candidates))
            new_pairs = [s for s, ok in zip(candidates, results) if ok]

            if new_pairs:
                self.seen_cache.add_many((s.token_key, s.created_at_ms) for s in new_pairs)
                self.stats['new_pairs'] += len(new_pairs)

            logger.info(f"[SCANNER] {len(observed)} pairs observed, {len(candidates)} unseen, {len(new_pairs)} new")
            return new_pairs

        except Exception as e:
            logger.error(f"[SCANNER] Error fetching pairs: {e}", exc_info=True)
            return []

    async def _search_all(self) -> List[MarketSnapshot]:
        responses = await asyncio.gather(
            *(self.api.search_pairs(term, chain=self.chain) for term in self.search_terms)
        )

        # Merge by token identity, last writer wins
        merged: Dict[str, MarketSnapshot] = {}
        for pairs in responses:
            for raw in pairs:
                try:
                    snapshot = self.normalizer.normalize_pair(raw)
                except Exception as e:
                    self.stats['malformed'] += 1
                    logger.warning(f"[SCANNER] Skipping malformed pair: {e}")
                    continue
                if snapshot is None or snapshot.chain_id != self.chain:
                    continue
                merged[snapshot.token_key] = snapshot

        return list(merged.values())

    async def _passes_gates(self, snapshot: MarketSnapshot) -> bool:
        """Age check then each gate in order; the first False ends the chain."""
        age = snapshot.age_minutes(int(self._clock() * 1000))
        if age is None or age > self.max_age_minutes:
            self.stats['too_old'] += 1
            return False

        try:
            for gate in self.gates:
                if not await gate(snapshot):
                    self.stats['gated_out'] += 1
                    return False
        except Exception as e:
            self.stats['gate_errors'] += 1
            logger.warning(f"[SCANNER] Gate error for {snapshot.symbol}: {e}")
            return False

        return True

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'seen_cache': self.seen_cache.get_stats(),
        }

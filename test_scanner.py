import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from memescanner.gates import LiquidityLockGate, RugCheckGate
from memescanner.models import MarketSnapshot
from memescanner.scanner import PairSource
from memescanner.seen_cache import SeenCache

NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


def raw_pair(address, symbol="PEPE", age_minutes=5, chain="solana", dex="pumpfun", price="0.001"):
    return {
        'chainId': chain,
        'dexId': dex,
        'pairAddress': f"pair-{address}",
        'url': f"https://dexscreener.com/{chain}/pair-{address}",
        'baseToken': {'address': address, 'symbol': symbol, 'name': symbol.title()},
        'priceUsd': price,
        'liquidity': {'usd': 5000},
        'volume': {'m5': 500, 'h24': 5000},
        'priceChange': {'m5': 10, 'h1': 5, 'h24': 20},
        'fdv': 50000,
        'pairCreatedAt': NOW_MS - age_minutes * 60_000,
    }


class TestGates(unittest.IsolatedAsyncioTestCase):

    def snapshot(self, dex_id="pumpfun"):
        return MarketSnapshot(token_address="Mint111", symbol="DOG", name="Dog", dex_id=dex_id)

    async def test_liquidity_lock_gate(self):
        gate = LiquidityLockGate()
        self.assertTrue(await gate(self.snapshot("pumpfun")))
        self.assertTrue(await gate(self.snapshot("moonshot")))
        self.assertFalse(await gate(self.snapshot("raydium")))

    async def test_rugcheck_gate(self):
        fetcher = MagicMock()
        gate = RugCheckGate(fetcher)

        fetcher.fetch = AsyncMock(return_value=None)
        self.assertTrue(await gate(self.snapshot()))

        fetcher.fetch = AsyncMock(return_value={'score': 2000, 'risks': []})
        self.assertFalse(await gate(self.snapshot()))

        fetcher.fetch = AsyncMock(return_value={'score': 100, 'risks': [{'name': 'Mutable metadata', 'level': 'danger'}]})
        self.assertFalse(await gate(self.snapshot()))

        fetcher.fetch = AsyncMock(return_value={'score': 100, 'risks': [{'name': 'Low LP', 'level': 'warn'}]})
        self.assertTrue(await gate(self.snapshot()))

        url = fetcher.fetch.await_args.args[0]
        self.assertEqual(url, "https://api.rugcheck.xyz/v1/tokens/Mint111/report/summary")

    async def test_rugcheck_gate_unreadable_score_passes(self):
        fetcher = MagicMock()
        gate = RugCheckGate(fetcher)

        fetcher.fetch = AsyncMock(return_value={'score': {'normalised': 12}, 'risks': None})
        self.assertTrue(await gate(self.snapshot()))

        fetcher.fetch = AsyncMock(return_value={'score': "n/a"})
        self.assertTrue(await gate(self.snapshot()))


class TestPairSource(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.cache_file = Path(tmp.name) / "seen.json"
        self.cache = SeenCache({'cache_file': str(self.cache_file)}, clock=lambda: NOW)
        self.api = MagicMock()
        self.gate = AsyncMock(return_value=True)

    def make_source(self, responses, terms=('pump', 'pepe')):
        async def search(term, chain=None):
            result = responses.get(term, [])
            if isinstance(result, Exception):
                raise result
            return result

        self.api.search_pairs = AsyncMock(side_effect=search)
        return PairSource(
            self.api,
            self.cache,
            gates=[self.gate],
            config={'search_terms': list(terms), 'max_age_minutes': 10},
            clock=lambda: NOW,
        )

    async def test_new_pairs_are_marked_seen(self):
        source = self.make_source({'pump': [raw_pair("A")], 'pepe': [raw_pair("B")]})

        pairs = await source.fetch_new_pairs()

        self.assertEqual(sorted(p.token_address for p in pairs), ["A", "B"])
        self.assertIn("solana:A", self.cache)
        self.assertIn("solana:B", self.cache)
        self.assertTrue(self.cache_file.exists())

        again = await source.fetch_new_pairs()
        self.assertEqual(again, [])
        self.assertEqual(len(source.last_observed), 2)

    async def test_merge_by_token_last_writer_wins(self):
        source = self.make_source({
            'pump': [raw_pair("A", price="0.001")],
            'pepe': [raw_pair("A", price="0.002")],
        })

        pairs = await source.fetch_new_pairs()

        self.assertEqual(len(pairs), 1)
        self.assertEqual(pairs[0].price_usd, 0.002)
        self.assertEqual(self.gate.await_count, 1)

    async def test_other_chains_dropped(self):
        source = self.make_source({'pump': [raw_pair("A", chain="base"), raw_pair("B")]})

        pairs = await source.fetch_new_pairs()

        self.assertEqual([p.token_address for p in pairs], ["B"])
        self.assertEqual([s.token_address for s in source.last_observed], ["B"])

    async def test_failed_gate_not_marked_seen(self):
        self.gate.return_value = False
        source = self.make_source({'pump': [raw_pair("A")]})

        self.assertEqual(await source.fetch_new_pairs(), [])
        self.assertNotIn("solana:A", self.cache)

        # Re-evaluated next tick
        self.gate.return_value = True
        pairs = await source.fetch_new_pairs()
        self.assertEqual([p.token_address for p in pairs], ["A"])

    async def test_old_or_undated_pairs_rejected_before_gates(self):
        undated = raw_pair("C")
        undated['pairCreatedAt'] = None
        source = self.make_source({'pump': [raw_pair("A", age_minutes=11), undated]})

        self.assertEqual(await source.fetch_new_pairs(), [])
        self.gate.assert_not_awaited()
        self.assertEqual(len(self.cache), 0)

    async def test_gate_exception_rejects_only_that_candidate(self):
        async def gate(snapshot):
            if snapshot.token_address == "A":
                raise RuntimeError("upstream exploded")
            return True

        source = self.make_source({'pump': [raw_pair("A"), raw_pair("B")]})
        source.gates = [gate]

        pairs = await source.fetch_new_pairs()

        self.assertEqual([p.token_address for p in pairs], ["B"])
        self.assertEqual(source.stats['gate_errors'], 1)

    async def test_gates_short_circuit_in_order(self):
        second = AsyncMock(return_value=True)
        self.gate.return_value = False
        source = self.make_source({'pump': [raw_pair("A")]})
        source.gates = [self.gate, second]

        await source.fetch_new_pairs()

        second.assert_not_awaited()

    async def test_malformed_pair_skipped_without_losing_tick(self):
        broken = raw_pair("BAD")
        broken['liquidity'] = 5000
        broken['baseToken'] = {'address': "BAD2", 'symbol': "X"}
        nameless = raw_pair("C")
        nameless['baseToken'] = "C"
        source = self.make_source({'pump': [raw_pair("GOOD"), nameless], 'pepe': [broken]})

        pairs = await source.fetch_new_pairs()

        self.assertEqual(sorted(p.token_address for p in pairs), ["BAD2", "GOOD"])
        bad = next(p for p in pairs if p.token_address == "BAD2")
        self.assertEqual(bad.liquidity_usd, 0.0)

    async def test_normalizer_error_isolated_per_pair(self):
        source = self.make_source({'pump': [raw_pair("A"), raw_pair("B")]})
        normalize = source.normalizer.normalize_pair

        def flaky(raw):
            if raw['baseToken']['address'] == "A":
                raise ValueError("bad payload")
            return normalize(raw)

        source.normalizer.normalize_pair = flaky

        pairs = await source.fetch_new_pairs()

        self.assertEqual([p.token_address for p in pairs], ["B"])
        self.assertEqual(source.stats['malformed'], 1)

    async def test_failed_tick_clears_last_observed(self):
        responses = {'pump': [raw_pair("A")]}
        source = self.make_source(responses)
        await source.fetch_new_pairs()
        self.assertEqual(len(source.last_observed), 1)

        responses['pump'] = RuntimeError("boom")
        self.assertEqual(await source.fetch_new_pairs(), [])
        self.assertEqual(source.last_observed, [])

    async def test_unexpected_error_yields_empty_tick(self):
        source = self.make_source({'pump': RuntimeError("boom")})

        self.assertEqual(await source.fetch_new_pairs(), [])


if __name__ == '__main__':
    unittest.main()

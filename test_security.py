import unittest
from unittest.mock import AsyncMock, MagicMock

from memescanner.models import MarketSnapshot
from memescanner.security import SecurityChecker, SecurityCheckError


def make_fetcher(payload):
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=payload)
    return fetcher


def make_snapshot(liquidity=10_000, fdv=100_000):
    return MarketSnapshot(
        token_address="MintAddress111",
        symbol="CAT",
        name="Cat Coin",
        liquidity_usd=liquidity,
        fdv_usd=fdv,
    )


class TestSecurityChecker(unittest.IsolatedAsyncioTestCase):

    async def test_metadata_unavailable_raises(self):
        checker = SecurityChecker(make_fetcher(None), make_fetcher(None))

        with self.assertRaises(SecurityCheckError):
            await checker.check(make_snapshot())

    async def test_collects_authorities_and_holder_share(self):
        metadata = make_fetcher({'mintAuthority': 'Auth111', 'freezeAuthority': None, 'supply': '1000'})
        holders = make_fetcher({'data': {'list': [{'amount': 100}, {'amount': 50}]}})
        checker = SecurityChecker(metadata, holders)

        security = await checker.check(make_snapshot())

        self.assertTrue(security.checked)
        self.assertTrue(security.mint_authority_enabled)
        self.assertFalse(security.freeze_authority_enabled)
        self.assertEqual(security.total_supply, 1000.0)
        self.assertAlmostEqual(security.top10_holder_percent, 15.0)

    async def test_wrapped_metadata_payload(self):
        metadata = make_fetcher({'data': {'mintAuthority': '', 'freezeAuthority': 'F', 'supply': 0}})
        holders = make_fetcher(None)
        checker = SecurityChecker(metadata, holders)

        security = await checker.check(make_snapshot())

        self.assertFalse(security.mint_authority_enabled)
        self.assertTrue(security.freeze_authority_enabled)
        self.assertEqual(security.top10_holder_percent, 0.0)
        holders.fetch.assert_not_awaited()

    async def test_liquidity_lock_heuristic_uses_warning_ratio(self):
        checker = SecurityChecker(make_fetcher({'supply': 0}), make_fetcher(None))

        unlocked = await checker.check(make_snapshot(liquidity=1000, fdv=200_000))
        self.assertFalse(unlocked.liquidity_locked)
        self.assertEqual(unlocked.liquidity_locked_percent, 0.0)

        locked = await checker.check(make_snapshot(liquidity=1000, fdv=50_000))
        self.assertTrue(locked.liquidity_locked)
        self.assertEqual(locked.liquidity_locked_percent, 95.0)

    def test_top10_only_counts_ten_largest(self):
        holders = [{'amount': 10} for _ in range(12)]
        self.assertAlmostEqual(SecurityChecker.top10_percent(holders, 1000), 10.0)
        self.assertEqual(SecurityChecker.top10_percent(holders, 0), 0.0)
        self.assertEqual(SecurityChecker.top10_percent([], 1000), 0.0)


if __name__ == '__main__':
    unittest.main()

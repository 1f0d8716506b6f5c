import unittest
from unittest.mock import AsyncMock, MagicMock

from memescanner.filters import SafetyFilter
from memescanner.models import MarketSnapshot, TokenSecurity
from memescanner.security import SecurityCheckError

NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


def make_snapshot(**overrides):
    """A token that passes every stage with no warnings."""
    fields = dict(
        token_address="So1anaTokenAddress1111111111111111111111111",
        symbol="PEPE2",
        name="Pepe Two",
        liquidity_usd=5000,
        volume_5m_usd=500,
        volume_24h_usd=5000,
        price_usd=0.0012,
        fdv_usd=50000,
        price_change_5m=20,
        price_change_1h=5,
        price_change_24h=30,
        created_at_ms=NOW_MS - 5 * 60_000,
        dex_id="pumpfun",
        url="https://dexscreener.com/solana/pair",
    )
    fields.update(overrides)
    return MarketSnapshot(**fields)


class TestSafetyFilter(unittest.TestCase):

    def setUp(self):
        self.filter = SafetyFilter({}, clock=lambda: NOW)

    def test_clean_token_passes_without_warnings(self):
        verdict = self.filter.evaluate(make_snapshot())

        self.assertTrue(verdict.passed)
        self.assertIsNone(verdict.reason)
        self.assertEqual(verdict.warnings, ())
        self.assertEqual(verdict.stats.liquidity, 5000)
        self.assertEqual(verdict.stats.price_change, 20)

    def test_banned_word_reported_before_low_liquidity(self):
        verdict = self.filter.evaluate(make_snapshot(symbol="RUGPULL", liquidity_usd=10))

        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.reason, "Banned word detected: rug")

    def test_banned_word_matches_name_case_insensitive(self):
        verdict = self.filter.evaluate(make_snapshot(name="Totally Not A SCAM"))
        self.assertEqual(verdict.reason, "Banned word detected: scam")

    def test_low_liquidity(self):
        verdict = self.filter.evaluate(make_snapshot(liquidity_usd=299))
        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.reason, "Low liquidity: $299")

    def test_low_volume_5m(self):
        verdict = self.filter.evaluate(make_snapshot(volume_5m_usd=49))
        self.assertFalse(verdict.passed)
        self.assertTrue(verdict.reason.startswith("Low volume 5m"))

    def test_volume_24h_only_checked_for_old_pairs(self):
        young = self.filter.evaluate(make_snapshot(volume_24h_usd=10, created_at_ms=NOW_MS - 30 * 60_000))
        self.assertTrue(young.passed)
        self.assertIn("⚠️ Low volume 24h", young.warnings)

        old = self.filter.evaluate(make_snapshot(volume_24h_usd=10, created_at_ms=NOW_MS - 90 * 60_000))
        self.assertFalse(old.passed)
        self.assertTrue(old.reason.startswith("Low volume 24h"))

    def test_fdv_ratio_reject_and_warn(self):
        rejected = self.filter.evaluate(make_snapshot(fdv_usd=5000 * 1001))
        self.assertFalse(rejected.passed)
        self.assertEqual(rejected.reason, "Suspicious FDV/Liquidity ratio (Potential Scam)")

        warned = self.filter.evaluate(make_snapshot(fdv_usd=5000 * 500))
        self.assertTrue(warned.passed)
        self.assertIn("⚠️ High FDV/Liquidity ratio: 500x", warned.warnings)

    def test_honeypot_pattern(self):
        verdict = self.filter.evaluate(make_snapshot(price_change_5m=400, volume_5m_usd=500))
        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.reason, "Honeypot pattern detected")

    def test_pump_warnings(self):
        extreme = self.filter.evaluate(make_snapshot(price_change_5m=400, volume_5m_usd=2000))
        self.assertTrue(extreme.passed)
        self.assertIn("⚠️ Extreme pump: +400%", extreme.warnings)

        high = self.filter.evaluate(make_snapshot(price_change_5m=150))
        self.assertIn("⚠️ High pump: +150%", high.warnings)

    def test_very_new_warning(self):
        verdict = self.filter.evaluate(make_snapshot(created_at_ms=NOW_MS - 60_000))
        self.assertIn("⚠️ Very new (<2m)", verdict.warnings)

    def test_unknown_creation_time_skips_age_rules(self):
        verdict = self.filter.evaluate(make_snapshot(created_at_ms=None, volume_24h_usd=10))
        self.assertTrue(verdict.passed)
        self.assertNotIn("⚠️ Very new (<2m)", verdict.warnings)

    def test_evaluate_is_idempotent(self):
        snapshot = make_snapshot(price_change_5m=150, liquidity_usd=800, fdv_usd=800 * 200)
        first = self.filter.evaluate(snapshot)
        second = self.filter.evaluate(snapshot)
        self.assertEqual(first, second)

    def test_stats_count_outcomes(self):
        self.filter.evaluate(make_snapshot())
        self.filter.evaluate(make_snapshot(liquidity_usd=1))
        stats = self.filter.get_stats()
        self.assertEqual(stats['total_evaluated'], 2)
        self.assertEqual(stats['passed'], 1)
        self.assertEqual(stats['rejected'], 1)


class TestSecurityStage(unittest.IsolatedAsyncioTestCase):

    def make_filter(self, security=None, error=None, **config):
        checker = MagicMock()
        checker.check = AsyncMock(return_value=security, side_effect=error)
        return SafetyFilter(config, security_checker=checker, clock=lambda: NOW), checker

    async def test_mint_authority_rejects(self):
        safety, _ = self.make_filter(TokenSecurity(mint_authority_enabled=True, liquidity_locked=True, checked=True))

        verdict = await safety.evaluate_with_security(make_snapshot())

        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.reason, "Mint authority is enabled (can mint more tokens)")
        self.assertIsNotNone(verdict.security)

    async def test_checker_failure_keeps_token_passing(self):
        safety, _ = self.make_filter(error=SecurityCheckError("metadata unavailable"))

        verdict = await safety.evaluate_with_security(make_snapshot())

        self.assertTrue(verdict.passed)
        self.assertIsNone(verdict.security)
        self.assertIn("⚠️ Security unknown", verdict.warnings)

    async def test_unlocked_liquidity_and_holder_warnings(self):
        security = TokenSecurity(liquidity_locked=False, top10_holder_percent=30.0, checked=True)
        safety, _ = self.make_filter(security)

        verdict = await safety.evaluate_with_security(make_snapshot())

        self.assertTrue(verdict.passed)
        self.assertIn("⚠️ Liquidity NOT locked", verdict.warnings)
        self.assertIn("⚠️ High holder concentration: 30.0%", verdict.warnings)
        self.assertIs(verdict.security, security)

    async def test_holder_concentration_rejects_above_limit(self):
        security = TokenSecurity(liquidity_locked=True, top10_holder_percent=60.0, checked=True)
        safety, _ = self.make_filter(security)

        verdict = await safety.evaluate_with_security(make_snapshot())

        self.assertFalse(verdict.passed)
        self.assertEqual(verdict.reason, "High holder concentration: 60.0%")

    async def test_disabled_checks_skip_checker(self):
        safety, checker = self.make_filter(
            TokenSecurity(mint_authority_enabled=True),
            enable_mint_authority_check=False,
            enable_liquidity_lock_check=False,
            enable_holder_distribution_check=False,
        )

        verdict = await safety.evaluate_with_security(make_snapshot())

        self.assertTrue(verdict.passed)
        checker.check.assert_not_awaited()

    async def test_failed_basic_verdict_skips_checker(self):
        safety, checker = self.make_filter(TokenSecurity())

        verdict = await safety.evaluate_with_security(make_snapshot(liquidity_usd=1))

        self.assertFalse(verdict.passed)
        checker.check.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()

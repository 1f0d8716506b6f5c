import tempfile
import unittest
from pathlib import Path

import yaml

from memescanner.config import DEFAULT_CONFIG, build_config, load_yaml_overrides


class TestBuildConfig(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)
        self.missing = self.dir / "missing.yaml"

    def test_defaults_without_overrides(self):
        config = build_config(self.missing, environ={})

        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIsNot(config['scanner'], DEFAULT_CONFIG['scanner'])

    def test_environment_overrides(self):
        config = build_config(self.missing, environ={
            'TELEGRAM_BOT_TOKEN': '123:abc',
            'POLL_INTERVAL': '5000',
            'MIN_LIQUIDITY': '750.5',
            'BANNED_WORDS': 'Scam, RUG ,,fake',
            'ENABLE_LOGS': 'false',
        })

        self.assertEqual(config['telegram']['bot_token'], '123:abc')
        self.assertEqual(config['scanner']['poll_interval_ms'], 5000)
        self.assertEqual(config['scanner']['min_liquidity'], 750.5)
        self.assertEqual(config['scanner']['banned_words'], ['scam', 'rug', 'fake'])
        self.assertFalse(config['logging']['enable_file_logs'])

    def test_invalid_number_keeps_default(self):
        with self.assertLogs('memescanner.config', level='WARNING'):
            config = build_config(self.missing, environ={'POLL_INTERVAL': 'fast'})

        self.assertEqual(config['scanner']['poll_interval_ms'], 3000)

    def test_empty_env_value_ignored(self):
        config = build_config(self.missing, environ={'TELEGRAM_CHANNEL_ID': ''})
        self.assertEqual(config['telegram']['chat_id'], '')

    def test_yaml_then_env(self):
        path = self.dir / "scanner.yaml"
        with open(path, 'w') as f:
            yaml.safe_dump({
                'scanner': {'max_age_minutes': 30, 'min_liquidity': 1000},
                'strategies': {'alert_cooldown_minutes': 0},
            }, f)

        config = build_config(path, environ={'MIN_LIQUIDITY': '2000'})

        self.assertEqual(config['scanner']['max_age_minutes'], 30)
        self.assertEqual(config['scanner']['min_liquidity'], 2000.0)
        self.assertEqual(config['strategies']['alert_cooldown_minutes'], 0)
        self.assertEqual(config['scanner']['chain'], 'solana')

    def test_non_mapping_yaml_ignored(self):
        path = self.dir / "scanner.yaml"
        path.write_text("- just\n- a list\n")

        self.assertEqual(load_yaml_overrides(path), {})


if __name__ == '__main__':
    unittest.main()

"""
SCANNER CONFIGURATION

Layers (later wins):
    1. DEFAULT_CONFIG below
    2. YAML override file (scanner.yaml, or the path in MEMESCANNER_CONFIG)
    3. Environment variables (.env loaded with python-dotenv)

Components receive a plain dict section and read it with .get(key, default).
"""

import copy
import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

CONFIG_PATH = Path(os.getenv("MEMESCANNER_CONFIG", Path(__file__).parent.parent / "scanner.yaml"))

DEFAULT_CONFIG = {
    'scanner': {
        'mode': 'search',                # 'search' or 'trending'
        'poll_interval_ms': 3000,
        'chain': 'solana',
        'min_liquidity': 300,
        'min_volume_5m': 50,
        'min_volume_24h': 1000,
        'max_age_minutes': 10,
        'banned_words': ['scam', 'rug', 'honeypot', 'test', 'fake'],
        'search_terms': ['pump', 'pepe', 'doge', 'moon', 'cat', 'inu', 'shib', 'solana', 'bonk', 'wif'],
        'fdv_ratio_reject': 1000,
        'fdv_ratio_warn': 100,
        'enable_mint_authority_check': True,
        'enable_liquidity_lock_check': True,
        'enable_holder_distribution_check': True,
        'max_holder_concentration': 50,
        'locked_dex_ids': ['pumpfun', 'moonshot'],
        'rugcheck_max_score': 1500,
        'alert_delay_seconds': 1.0,
        'strategy_alert_delay_seconds': 0.3,
        'health_interval_seconds': 300,
    },
    'fetch': {
        'timeout': 10.0,
        'retries': 3,
        'retry_delay': 1.0,
        'max_concurrent': 3,
        'failure_threshold': 5,
        'success_threshold': 2,
        'cooldown_seconds': 60,
    },
    'seen_cache': {
        'cache_file': 'data/seen_pairs.json',
        'max_age_hours': 24,
        'cleanup_interval_seconds': 3600,
    },
    'strategies': {
        'enabled': True,
        'min_volume_spike': 3,
        'min_price_change_percent': 5,
        'min_momentum_percent': 10,
        'max_pullback_percent': 40,
        'use_historical_data': True,
        'alert_cooldown_minutes': 0,
    },
    'trending': {
        'min_liquidity': 300,
        'min_market_cap': 50000,
        'min_active_boosts': 2,
        'seen_limit': 1000,
        'seen_trim': 500,
        'token_delay_seconds': 0.5,
        'alert_delay_seconds': 0.3,
    },
    'telegram': {
        'bot_token': '',
        'chat_id': '',
        'send_startup_message': True,
        'min_interval_seconds': 1.0,
        'max_retries': 3,
        'connect_attempts': 3,
        'error_cooldown_seconds': 300,
    },
    'storage': {
        'db_path': 'data',
        'db_file': 'tokens.json',
        'max_age_hours': 24,
    },
    'logging': {
        'level': 'INFO',
        'enable_file_logs': True,
        'log_dir': 'logs',
        'retention_days': 7,
    },
}

# env var -> (section, key, type)
ENV_OVERRIDES = {
    'TELEGRAM_BOT_TOKEN': ('telegram', 'bot_token', str),
    'TELEGRAM_CHANNEL_ID': ('telegram', 'chat_id', str),
    'SEND_STARTUP_MESSAGE': ('telegram', 'send_startup_message', bool),
    'POLL_INTERVAL': ('scanner', 'poll_interval_ms', int),
    'MIN_LIQUIDITY': ('scanner', 'min_liquidity', float),
    'MIN_VOLUME': ('scanner', 'min_volume_5m', float),
    'MIN_VOLUME_24H': ('scanner', 'min_volume_24h', float),
    'MAX_AGE': ('scanner', 'max_age_minutes', float),
    'BANNED_WORDS': ('scanner', 'banned_words', list),
    'ENABLE_MINT_AUTHORITY_CHECK': ('scanner', 'enable_mint_authority_check', bool),
    'ENABLE_LIQUIDITY_LOCK_CHECK': ('scanner', 'enable_liquidity_lock_check', bool),
    'ENABLE_HOLDER_DISTRIBUTION_CHECK': ('scanner', 'enable_holder_distribution_check', bool),
    'MAX_HOLDER_CONCENTRATION': ('scanner', 'max_holder_concentration', float),
    'SCANNER_MODE': ('scanner', 'mode', str),
    'DB_PATH': ('storage', 'db_path', str),
    'ENABLE_LOGS': ('logging', 'enable_file_logs', bool),
    'LOG_LEVEL': ('logging', 'level', str),
}


def load_yaml_overrides(path: Path = None) -> Dict:
    """Load the YAML override file; {} when missing or unreadable."""
    path = Path(path or CONFIG_PATH)
    if not path.exists():
        return {}
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"[CONFIG] Could not read {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"[CONFIG] Ignoring {path}: top level must be a mapping")
        return {}
    return data


def _parse_env_value(name: str, raw: str, kind, default):
    if kind is bool:
        return raw.strip().lower() not in ('false', '0', 'no', 'off', '')
    if kind is list:
        return [w.strip().lower() for w in raw.split(',') if w.strip()]
    if kind is str:
        return raw
    try:
        return kind(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Invalid value for {name}: {raw!r}, using default {default}")
        return default


def build_config(yaml_path: Path = None, environ: Optional[Dict] = None) -> Dict:
    """Merge defaults, YAML overrides and environment variables."""
    environ = os.environ if environ is None else environ
    config = copy.deepcopy(DEFAULT_CONFIG)

    for section, values in load_yaml_overrides(yaml_path).items():
        if section in config and isinstance(values, dict):
            config[section].update(values)
        else:
            logger.warning(f"[CONFIG] Unknown config section: {section}")

    for name, (section, key, kind) in ENV_OVERRIDES.items():
        raw = environ.get(name)
        if raw is None or raw == '':
            continue
        config[section][key] = _parse_env_value(name, raw, kind, config[section][key])

    return config


_CONFIG: Optional[Dict] = None


def get_config() -> Dict:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = build_config()
    return _CONFIG


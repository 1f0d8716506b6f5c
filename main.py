import argparse
import asyncio
import logging
import signal
import sys

from colorama import Fore, Style, init

from memescanner.config import get_config
from memescanner.database import TokenDatabase
from memescanner.dex_screener import DexScreenerAPI
from memescanner.fetcher import RequestQueue, ResilientFetcher
from memescanner.filters import SafetyFilter
from memescanner.formatting import format_currency
from memescanner.gates import LiquidityLockGate, RugCheckGate
from memescanner.logger import setup_logging
from memescanner.normalizer import PairNormalizer
from memescanner.notifier import TelegramNotifier
from memescanner.pipeline import ScanPipeline
from memescanner.scanner import PairSource
from memescanner.scheduler import PollScheduler
from memescanner.security import SecurityChecker
from memescanner.seen_cache import SeenCache
from memescanner.strategies import StrategyEngine
from memescanner.trending import TrendingScanner

init(autoreset=True)

logger = logging.getLogger("memescanner.main")

UPSTREAMS = ('dexscreener', 'rugcheck', 'solscan', 'birdeye')


def print_banner(config, mode):
    scanner = config['scanner']
    print(f"\n{Fore.CYAN}{'=' * 50}")
    print(f"{Fore.MAGENTA}🤖 SOLANA MEME COIN SCANNER{Style.RESET_ALL}")
    print(f"{Fore.CYAN}{'=' * 50}")
    print(f"{Fore.YELLOW}Mode: {Fore.WHITE}{mode}")
    print(f"{Fore.YELLOW}Poll interval: {Fore.WHITE}{scanner['poll_interval_ms']}ms")
    print(f"{Fore.YELLOW}Min liquidity: {Fore.WHITE}{format_currency(scanner['min_liquidity'])}")
    print(f"{Fore.YELLOW}Min volume 5m: {Fore.WHITE}{format_currency(scanner['min_volume_5m'])}")
    print(f"{Fore.YELLOW}Max age: {Fore.WHITE}{scanner['max_age_minutes']} min")
    print(f"{Fore.CYAN}{'=' * 50}\n")


async def main():
    parser = argparse.ArgumentParser(description="Solana Meme Coin Scanner")
    parser.add_argument("--mode", choices=['search', 'trending'], default=None,
                        help="Scanner mode (default: SCANNER_MODE or 'search')")
    parser.add_argument("--once", action="store_true", help="Run a single scan and exit")
    args = parser.parse_args()

    config = get_config()
    setup_logging(config['logging'])
    mode = args.mode or config['scanner']['mode']

    print_banner(config, mode)

    telegram_config = config['telegram']
    if not telegram_config['bot_token'] or not telegram_config['chat_id']:
        print(f"{Fore.RED}❌ TELEGRAM_BOT_TOKEN and TELEGRAM_CHANNEL_ID are required")
        sys.exit(1)

    # One breaker per upstream, one shared request queue
    queue = RequestQueue(config['fetch']['max_concurrent'])
    fetchers = {
        name: ResilientFetcher(config['fetch'], name=name, queue=queue)
        for name in UPSTREAMS
    }

    api = DexScreenerAPI(fetchers['dexscreener'])
    normalizer = PairNormalizer()

    database = TokenDatabase(config['storage'])
    database.load()

    engine = StrategyEngine(config['strategies'], api=api, database=database)

    notifier = TelegramNotifier(telegram_config)
    if not await notifier.connect():
        print(f"{Fore.RED}❌ Could not connect to Telegram")
        for fetcher in fetchers.values():
            await fetcher.close()
        sys.exit(1)

    scanner_config = config['scanner']
    scheduler = PollScheduler(
        scanner_config,
        on_error=lambda e: notifier.send_error(f"{type(e).__name__}: {e}"),
    )

    if mode == 'trending':
        trending = TrendingScanner(api, engine, notifier, normalizer, config['trending'])
        tick = trending.scan
    else:
        seen_cache = SeenCache(config['seen_cache'])
        gates = [
            LiquidityLockGate(scanner_config),
            RugCheckGate(fetchers['rugcheck'], {'max_score': scanner_config['rugcheck_max_score']}),
        ]
        source = PairSource(api, seen_cache, normalizer, gates, scanner_config)
        security = SecurityChecker(fetchers['solscan'], fetchers['birdeye'], scanner_config)
        safety_filter = SafetyFilter(scanner_config, security_checker=security)
        pipeline = ScanPipeline(source, safety_filter, engine, notifier, database, scanner_config)
        tick = pipeline.run_tick

    await notifier.send_startup_message(scanner_config, mode)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        if args.once:
            await scheduler.run_once(tick)
        else:
            await scheduler.run(tick)
    finally:
        print(f"\n{Fore.YELLOW}Scanner stopped.")
        database.flush()
        for fetcher in fetchers.values():
            await fetcher.close()
        logger.info(f"[STATS] {scheduler.get_stats()}")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print(f"\n{Fore.YELLOW}Monitoring stopped.")


if __name__ == "__main__":
    run()

"""
Logging setup

Console: colored `[timestamp] LEVEL message` lines (colorama).
File:    logs/scanner.log, rolled over at midnight into
         scanner.log.YYYY-MM-DD; only the last `retention_days` days are kept.
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict

from colorama import Fore, Style, init

LEVEL_COLORS = {
    logging.DEBUG: Fore.WHITE,
    logging.INFO: Fore.CYAN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "scanner.log"


class ColorFormatter(logging.Formatter):
    """Colors the whole line by level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno, '')
        return f"{color}{message}{Style.RESET_ALL}"


def daily_file_handler(log_dir: Path, retention_days: int = 7) -> TimedRotatingFileHandler:
    """File handler that starts a new file every midnight."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        when='midnight',
        backupCount=retention_days,
        encoding='utf-8',
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(config: Dict = None) -> logging.Logger:
    """
    Configure the root logger once at startup.

    Args:
        config: logging section (level, enable_file_logs, log_dir, retention_days)
    """
    config = config or {}
    init(autoreset=True)

    level = getattr(logging, str(config.get('level', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(ColorFormatter(LOG_FORMAT, DATE_FORMAT))
    root.addHandler(console)

    if config.get('enable_file_logs', True):
        root.addHandler(daily_file_handler(config.get('log_dir', 'logs'), config.get('retention_days', 7)))

    # httpx logs every Telegram request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('telegram').setLevel(logging.WARNING)

    return root

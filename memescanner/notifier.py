"""
Telegram Notifier - alert dispatch to a Telegram channel

- HTML parse mode, link previews disabled
- Minimum spacing between sends (1 message/second)
- Long messages split at 4000 characters on line boundaries
- Bounded retries with linear backoff per message part
"""

import asyncio
import logging
import time
from typing import Callable, Dict

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import TelegramError

from .formatting import format_error_message, format_startup_message, split_message

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """
    Sends HTML alerts to one chat.

    Disabled (every send returns False) when the bot token or chat id is
    missing. Send failures are reported as booleans, never raised.
    """

    def __init__(self, config: Dict = None, bot: Bot = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or {}
        self.bot_token = self.config.get('bot_token', '')
        self.chat_id = self.config.get('chat_id', '')
        self.enabled = bool(self.bot_token and self.chat_id)
        self.send_startup = self.config.get('send_startup_message', True)

        self.min_interval = self.config.get('min_interval_seconds', 1.0)
        self.max_retries = self.config.get('max_retries', 3)
        self.retry_delay = self.config.get('retry_delay', 1.0)
        self.connect_attempts = self.config.get('connect_attempts', 3)
        self.max_length = self.config.get('max_message_length', 4000)
        self.error_cooldown = self.config.get('error_cooldown_seconds', 300)

        self._clock = clock
        self._last_sent = None
        self._send_lock = asyncio.Lock()
        self._last_error_alert: Dict[str, float] = {}
        self.ready = False

        if bot is not None:
            self.bot = bot
        elif self.enabled:
            self.bot = Bot(token=self.bot_token)
        else:
            self.bot = None

        self.stats = {
            'sent': 0,
            'failed': 0,
            'retries': 0,
        }

    async def connect(self) -> bool:
        """Verify the bot token with getMe."""
        if not self.enabled:
            logger.warning("[TELEGRAM] Notifier disabled (missing bot token or chat id)")
            return False

        for attempt in range(1, self.connect_attempts + 1):
            try:
                me = await self.bot.get_me()
                self.ready = True
                logger.info(f"[TELEGRAM] Bot connected: @{me.username}")
                return True
            except TelegramError as e:
                logger.error(f"[TELEGRAM] Connection attempt {attempt}/{self.connect_attempts} failed: {e}")
                if attempt < self.connect_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)

        return False

    async def send_message(self, text: str) -> bool:
        """
        Send `text`, split into parts when too long.

        Returns:
            True if every part was delivered
        """
        if not self.enabled:
            return False

        async with self._send_lock:
            for part in split_message(text, self.max_length):
                await self._rate_limit_wait()
                if not await self._send_with_retry(part):
                    self.stats['failed'] += 1
                    return False

        self.stats['sent'] += 1
        return True

    async def _rate_limit_wait(self):
        if self._last_sent is not None:
            wait = self.min_interval - (self._clock() - self._last_sent)
            if wait > 0:
                logger.debug(f"[RATE LIMIT] Waiting {wait * 1000:.0f}ms...")
                await asyncio.sleep(wait)
        self._last_sent = self._clock()

    async def _send_with_retry(self, text: str) -> bool:
        for attempt in range(1, self.max_retries + 1):
            try:
                await self.bot.send_message(
                    chat_id=self.chat_id,
                    text=text,
                    parse_mode=ParseMode.HTML,
                    link_preview_options=LinkPreviewOptions(is_disabled=True),
                )
                return True
            except TelegramError as e:
                if attempt == self.max_retries:
                    logger.error(f"[TELEGRAM] Send failed after {self.max_retries} attempts: {e}")
                    return False
                self.stats['retries'] += 1
                delay = self.retry_delay * attempt
                logger.warning(f"[TELEGRAM] Send attempt {attempt} failed, retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
        return False

    async def send_startup_message(self, scanner_config: Dict, mode: str) -> bool:
        if not self.send_startup:
            logger.info("Startup message disabled (SEND_STARTUP_MESSAGE=false)")
            return False
        sent = await self.send_message(format_startup_message(scanner_config, mode))
        if sent:
            logger.info("Startup message sent")
        return sent

    async def send_error(self, error: str, error_type: str = "SCAN_FAILURE") -> bool:
        """
        Report a failure to the channel.

        Repeats of the same error type within `error_cooldown_seconds` are dropped.
        """
        now = self._clock()
        last = self._last_error_alert.get(error_type)
        if last is not None and now - last < self.error_cooldown:
            logger.debug(f"[TELEGRAM] {error_type} error alert skipped (cooldown)")
            return False

        self._last_error_alert[error_type] = now
        return await self.send_message(format_error_message(error))

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'enabled': self.enabled,
            'ready': self.ready,
        }

import unittest
from unittest.mock import AsyncMock, MagicMock

from telegram.constants import ParseMode
from telegram.error import TelegramError

from memescanner.formatting import format_age, format_currency, format_number, split_message
from memescanner.notifier import TelegramNotifier


class TestFormatting(unittest.TestCase):

    def test_format_currency(self):
        self.assertEqual(format_currency(2_500_000), "$2.50M")
        self.assertEqual(format_currency(4_560), "$4.6k")
        self.assertEqual(format_currency(299), "$299")

    def test_format_number(self):
        self.assertEqual(format_number(1_234_567), "1.23M")
        self.assertEqual(format_number(4_560), "4.56k")
        self.assertEqual(format_number(7.891), "7.89")

    def test_format_age(self):
        self.assertEqual(format_age(0.5), "<1m")
        self.assertEqual(format_age(12.7), "12m")
        self.assertEqual(format_age(125), "2h5m")
        self.assertEqual(format_age(None), "Unknown")

    def test_split_message_on_line_boundaries(self):
        lines = ["a" * 2500, "b" * 2500, "c" * 100]
        parts = split_message("\n".join(lines), 4000)

        self.assertEqual(parts, ["a" * 2500, "b" * 2500 + "\n" + "c" * 100])
        self.assertTrue(all(len(p) <= 4000 for p in parts))

    def test_split_message_short_text_untouched(self):
        self.assertEqual(split_message("hello\nworld"), ["hello\nworld"])

    def test_split_message_hard_splits_long_line(self):
        parts = split_message("x" * 9000, 4000)
        self.assertEqual([len(p) for p in parts], [4000, 4000, 1000])


class TestTelegramNotifier(unittest.IsolatedAsyncioTestCase):

    def make_notifier(self, bot):
        return TelegramNotifier(
            {'bot_token': '123:abc', 'chat_id': '@channel', 'retry_delay': 0, 'min_interval_seconds': 0},
            bot=bot,
        )

    async def test_disabled_without_credentials(self):
        notifier = TelegramNotifier({})

        self.assertFalse(notifier.enabled)
        self.assertFalse(await notifier.send_message("hi"))
        self.assertFalse(await notifier.connect())

    async def test_sends_html_without_preview(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        notifier = self.make_notifier(bot)

        self.assertTrue(await notifier.send_message("<b>hi</b>"))

        kwargs = bot.send_message.await_args.kwargs
        self.assertEqual(kwargs['chat_id'], '@channel')
        self.assertEqual(kwargs['parse_mode'], ParseMode.HTML)
        self.assertTrue(kwargs['link_preview_options'].is_disabled)

    async def test_retries_then_succeeds(self):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=[TelegramError("Timed out"), None])
        notifier = self.make_notifier(bot)

        self.assertTrue(await notifier.send_message("hi"))
        self.assertEqual(bot.send_message.await_count, 2)
        self.assertEqual(notifier.stats['retries'], 1)

    async def test_gives_up_after_three_attempts(self):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=TelegramError("Bad Request"))
        notifier = self.make_notifier(bot)

        self.assertFalse(await notifier.send_message("hi"))
        self.assertEqual(bot.send_message.await_count, 3)
        self.assertEqual(notifier.stats['failed'], 1)

    async def test_long_message_sent_in_parts(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        notifier = self.make_notifier(bot)

        await notifier.send_message("\n".join(["line " * 300] * 3))

        self.assertEqual(bot.send_message.await_count, 2)

    async def test_error_alerts_rate_limited_per_type(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        clock = [0.0]
        notifier = TelegramNotifier(
            {'bot_token': '123:abc', 'chat_id': '@channel', 'min_interval_seconds': 0},
            bot=bot,
            clock=lambda: clock[0],
        )

        self.assertTrue(await notifier.send_error("RuntimeError: feed down"))
        self.assertFalse(await notifier.send_error("RuntimeError: feed down"))
        self.assertTrue(await notifier.send_error("disk full", error_type="STORAGE"))

        clock[0] += 301
        self.assertTrue(await notifier.send_error("RuntimeError: feed down"))

        self.assertEqual(bot.send_message.await_count, 3)
        self.assertIn("Scanner Error", bot.send_message.await_args_list[0].kwargs['text'])

    async def test_connect_checks_bot(self):
        bot = MagicMock()
        bot.get_me = AsyncMock(side_effect=[TelegramError("flaky"), MagicMock(username="scanner_bot")])
        notifier = self.make_notifier(bot)

        self.assertTrue(await notifier.connect())
        self.assertTrue(notifier.ready)


if __name__ == '__main__':
    unittest.main()

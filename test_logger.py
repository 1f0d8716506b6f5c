import logging
import tempfile
import unittest
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from memescanner.logger import ColorFormatter, setup_logging


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.log_dir = Path(tmp.name) / "logs"

        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level

        def restore():
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

        self.addCleanup(restore)

    def file_handlers(self, root):
        return [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]

    def test_file_rolls_over_at_midnight(self):
        root = setup_logging({'log_dir': str(self.log_dir), 'retention_days': 5})

        handlers = self.file_handlers(root)
        self.assertEqual(len(handlers), 1)
        self.assertEqual(handlers[0].when, 'MIDNIGHT')
        self.assertEqual(handlers[0].backupCount, 5)

        logging.getLogger("memescanner.test").warning("disk almost full")
        handlers[0].flush()
        self.assertIn("WARNING disk almost full", (self.log_dir / "scanner.log").read_text())

    def test_file_logs_can_be_disabled(self):
        root = setup_logging({'log_dir': str(self.log_dir), 'enable_file_logs': False, 'level': 'debug'})

        self.assertEqual(self.file_handlers(root), [])
        self.assertEqual(root.level, logging.DEBUG)
        self.assertFalse(self.log_dir.exists())
        self.assertIsInstance(root.handlers[0].formatter, ColorFormatter)


if __name__ == '__main__':
    unittest.main()

import logging
import os
import sys
import unittest
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from utils.logger import CenteredFormatter, get_logger, log_level_from_env  # noqa: E402


class LoggerTestCase(unittest.TestCase):
    def test_level_from_environment(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertEqual(log_level_from_env(), logging.INFO)
        with mock.patch.dict(os.environ, {"DEBUG": "1"}, clear=True):
            self.assertEqual(log_level_from_env(), logging.DEBUG)
        with mock.patch.dict(os.environ, {"DEBUG": "1", "STOREFRONT_LOG_LEVEL": "warning"}, clear=True):
            self.assertEqual(log_level_from_env(), logging.WARNING)
        with mock.patch.dict(os.environ, {"STOREFRONT_LOG_LEVEL": "chatty"}, clear=True):
            self.assertEqual(log_level_from_env(), logging.INFO)

    def test_handler_attached_once(self):
        first = get_logger("tests.logger.once")
        second = get_logger("tests.logger.once")
        self.assertIs(first, second)
        self.assertEqual(len(second.handlers), 1)
        self.assertFalse(second.propagate)
        self.assertEqual(get_logger().name, "storefront")

    def test_formatter_centers_name_without_touching_record(self):
        formatter = CenteredFormatter("[%(name)s] %(message)s")
        record = logging.LogRecord("profiles.remote", logging.INFO, __file__, 1, "hello", None, None)
        text = formatter.format(record)
        self.assertIn("profiles.remote", text)
        self.assertTrue(text.endswith("] hello"))
        self.assertEqual(record.name, "profiles.remote")

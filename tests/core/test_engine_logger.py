"""
Unit tests for Logger functionality.

Tests formatter and handler strategies, logger configuration, and logging
output to both console and file destinations.
"""

import logging
import logging.handlers
import tempfile
import unittest
from pathlib import Path

from order_engine.core.logger import (
    ConsoleLogHandler,
    EngineLogFormatter,
    FileLogHandler,
    LoggerManager,
    StandardLogFormatter,
    create_engine_logger,
    get_module_logger,
)


class TestStandardLogFormatter(unittest.TestCase):
    """Test cases for StandardLogFormatter."""

    def test_formatter_with_module(self):
        """Test formatter with module name included."""
        formatter = StandardLogFormatter(include_module=True).get_formatter()

        self.assertIsInstance(formatter, logging.Formatter)
        self.assertIn("%(name)s", formatter._fmt)

    def test_formatter_without_module(self):
        """Test formatter without module name."""
        formatter = StandardLogFormatter(include_module=False).get_formatter()

        self.assertNotIn("%(name)s", formatter._fmt)


class TestEngineLogFormatter(unittest.TestCase):
    """Test cases for EngineLogFormatter."""

    def test_engine_formatter(self):
        formatter = EngineLogFormatter().get_formatter()

        self.assertIn("%(levelname)", formatter._fmt)
        self.assertIn("%(name)", formatter._fmt)


class TestHandlers(unittest.TestCase):
    """Test cases for handler strategies."""

    def test_create_console_handler(self):
        """Test console handler creation."""
        formatter = StandardLogFormatter().get_formatter()

        handler = ConsoleLogHandler(level=logging.DEBUG).create_handler(formatter)

        self.assertIsInstance(handler, logging.StreamHandler)
        self.assertEqual(handler.level, logging.DEBUG)

    def test_create_file_handler_creates_directory(self):
        """Test rotating file handler creation in a missing directory."""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "nested" / "engine.log"
            formatter = StandardLogFormatter().get_formatter()

            handler = FileLogHandler(
                str(log_path), level=logging.INFO, max_bytes=1024, backup_count=3
            ).create_handler(formatter)
            try:
                self.assertIsInstance(handler, logging.handlers.RotatingFileHandler)
                self.assertEqual(handler.maxBytes, 1024)
                self.assertEqual(handler.backupCount, 3)
                self.assertTrue(log_path.parent.exists())
            finally:
                handler.close()


class TestLoggerManager(unittest.TestCase):
    """Test cases for LoggerManager."""

    def setUp(self):
        self.manager = LoggerManager("order_engine_test_manager")

    def tearDown(self):
        logger = logging.getLogger("order_engine_test_manager")
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

    def test_get_logger_before_configure(self):
        """Test error when logger requested before configuration."""
        with self.assertRaises(RuntimeError):
            self.manager.get_logger()

    def test_reconfigure_replaces_handlers(self):
        """Test that configuring twice does not duplicate handlers."""
        self.manager.configure_logger(level=logging.INFO)
        self.manager.configure_logger(level=logging.INFO)

        logger = self.manager.get_logger()
        self.assertEqual(len(logger.handlers), 1)

    def test_update_log_level(self):
        """Test updating level of logger and handlers."""
        self.manager.configure_logger(
            level=logging.INFO, handlers={"console": ConsoleLogHandler()}
        )

        self.manager.update_log_level(logging.ERROR)

        self.assertEqual(self.manager.get_logger().level, logging.ERROR)
        self.assertEqual(self.manager.get_handler("console").level, logging.ERROR)


class TestLoggerFactories(unittest.TestCase):
    """Test cases for create_engine_logger and get_module_logger."""

    def tearDown(self):
        logger = logging.getLogger("order_engine_test_factory")
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

    def test_console_only_logger(self):
        """Test creating logger without a log directory."""
        logger = create_engine_logger(
            log_level="DEBUG", log_dir=None, name="order_engine_test_factory"
        )

        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 1)

    def test_logger_writes_file(self):
        """Test that messages reach the daily log file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            logger = create_engine_logger(
                log_level="INFO", log_dir=temp_dir, name="order_engine_test_factory"
            )
            logger.info("engine started")
            for handler in logger.handlers:
                handler.flush()

            log_files = list(Path(temp_dir).glob("order_engine_test_factory_*.log"))
            self.assertEqual(len(log_files), 1)
            self.assertIn("engine started", log_files[0].read_text())

            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()

    def test_unknown_level_defaults_to_info(self):
        logger = create_engine_logger(
            log_level="VERBOSE", log_dir=None, name="order_engine_test_factory"
        )

        self.assertEqual(logger.level, logging.INFO)

    def test_module_logger_is_engine_child(self):
        """Test module loggers hang off the engine logger."""
        logger = get_module_logger("dispatch_scheduler")

        self.assertEqual(logger.name, "order_engine.dispatch_scheduler")


if __name__ == "__main__":
    unittest.main()

"""
Logging system for the order execution engine.

Provides centralized logging with pluggable formatters and handlers. Every
component obtains a child of the ``order_engine`` logger through
``get_module_logger`` so a single ``create_engine_logger`` call configures
output for the whole engine.
"""

import logging
import logging.handlers
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

ROOT_LOGGER_NAME = "order_engine"

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class ILogFormatter(ABC):
    """Interface for log formatting strategies."""

    @abstractmethod
    def get_formatter(self) -> logging.Formatter:
        """
        Build the formatter for this strategy.

        Returns:
            logging.Formatter: Formatter ready to attach to a handler
        """


class StandardLogFormatter(ILogFormatter):
    """Timestamp, level and message, optionally with the logger name."""

    def __init__(self, include_module: bool = True) -> None:
        """
        Initialize standard log formatter.

        Args:
            include_module: Whether records show the emitting logger name
        """
        self._include_module = include_module

    def get_formatter(self) -> logging.Formatter:
        """
        Build the plain timestamped formatter.

        Returns:
            logging.Formatter: Standard formatter instance
        """
        if self._include_module:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            format_string = "%(asctime)s - %(levelname)s - %(message)s"

        return logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")


class EngineLogFormatter(ILogFormatter):
    """Column-aligned format used for dispatch and lifecycle logs."""

    def get_formatter(self) -> logging.Formatter:
        """
        Build the column-aligned engine formatter.

        Returns:
            logging.Formatter: Engine formatter instance
        """
        format_string = (
            "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)-32s | "
            "%(message)s"
        )
        return logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")


class ILogHandler(ABC):
    """Interface for log handler creation strategies."""

    @abstractmethod
    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        """
        Create configured log handler.

        Args:
            formatter: Log formatter to use

        Returns:
            logging.Handler: Configured handler instance
        """


class ConsoleLogHandler(ILogHandler):
    """Creates a stderr stream handler."""

    def __init__(self, level: int = logging.INFO) -> None:
        """
        Initialize console log handler.

        Args:
            level: Minimum level written to stderr
        """
        self._level = level

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        """
        Create a stream handler writing to stderr.

        Args:
            formatter: Log formatter to use

        Returns:
            logging.Handler: Console handler instance
        """
        handler = logging.StreamHandler()
        handler.setLevel(self._level)
        handler.setFormatter(formatter)
        return handler


class FileLogHandler(ILogHandler):
    """Creates a size-rotated file handler."""

    def __init__(
        self,
        log_file_path: str,
        level: int = logging.DEBUG,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> None:
        """
        Initialize file log handler.

        Args:
            log_file_path: Path to log file
            level: Logging level for file output
            max_bytes: Maximum file size before rotation
            backup_count: Number of backup files to keep
        """
        self._log_file_path = Path(log_file_path)
        self._level = level
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        """
        Create a rotating file handler, creating the log directory if needed.

        Args:
            formatter: Log formatter to use

        Returns:
            logging.Handler: Rotating file handler instance
        """
        self._log_file_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            filename=str(self._log_file_path),
            maxBytes=self._max_bytes,
            backupCount=self._backup_count,
        )
        handler.setLevel(self._level)
        handler.setFormatter(formatter)
        return handler


class LoggerManager:
    """
    Owns the configuration of one named logger and its handlers.

    Reconfiguring replaces every handler previously installed by this
    manager, so repeated application start-ups do not duplicate output.
    """

    def __init__(self, name: str = ROOT_LOGGER_NAME) -> None:
        """
        Initialize logger manager.

        Args:
            name: Name of the logger this manager configures
        """
        self._logger_name = name
        self._logger: Optional[logging.Logger] = None
        self._handlers: Dict[str, logging.Handler] = {}
        self._is_configured = False

    def configure_logger(
        self,
        level: int = logging.INFO,
        formatter: Optional[ILogFormatter] = None,
        handlers: Optional[Dict[str, ILogHandler]] = None,
    ) -> None:
        """
        Configure logger with specified settings.

        Args:
            level: Base logging level
            formatter: Log formatter strategy
            handlers: Dictionary of handler name to handler strategy
        """
        self._logger = logging.getLogger(self._logger_name)
        self._logger.setLevel(level)

        for handler in self._logger.handlers:
            handler.close()
        self._logger.handlers.clear()
        self._handlers.clear()

        log_formatter = (formatter or StandardLogFormatter()).get_formatter()

        if handlers is None:
            handlers = {"console": ConsoleLogHandler(level=level)}

        for handler_name, handler_strategy in handlers.items():
            handler = handler_strategy.create_handler(log_formatter)
            self._logger.addHandler(handler)
            self._handlers[handler_name] = handler

        self._is_configured = True

    def get_logger(self) -> logging.Logger:
        """
        Get configured logger instance.

        Returns:
            logging.Logger: The configured logger

        Raises:
            RuntimeError: If logger not configured
        """
        if not self._is_configured or self._logger is None:
            raise RuntimeError("Logger not configured. Call configure_logger() first.")

        return self._logger

    def update_log_level(self, level: int) -> None:
        """
        Update logging level for the logger and all of its handlers.

        Args:
            level: New logging level
        """
        if self._logger:
            self._logger.setLevel(level)
            for handler in self._handlers.values():
                handler.setLevel(level)

    def get_handler(self, handler_name: str) -> Optional[logging.Handler]:
        """
        Get a handler installed by this manager.

        Args:
            handler_name: Name given to the handler at configuration time

        Returns:
            Optional[logging.Handler]: Handler instance or None if not found
        """
        return self._handlers.get(handler_name)


def create_engine_logger(
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
    name: str = ROOT_LOGGER_NAME,
) -> logging.Logger:
    """
    Factory function to create the pre-configured engine logger.

    Args:
        log_level: Logging level as string
        log_dir: Directory for daily log files, None for console only
        name: Logger name

    Returns:
        logging.Logger: Configured logger instance
    """
    level = LEVEL_MAP.get(log_level.upper(), logging.INFO)

    handlers: Dict[str, ILogHandler] = {"console": ConsoleLogHandler(level=level)}
    if log_dir:
        log_file = Path(log_dir) / f"{name}_{datetime.now().strftime('%Y%m%d')}.log"
        handlers["file"] = FileLogHandler(str(log_file), level=logging.DEBUG)

    manager = LoggerManager(name)
    manager.configure_logger(
        level=level, formatter=EngineLogFormatter(), handlers=handlers
    )
    return manager.get_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Get logger for specific module.

    Args:
        module_name: Name of the module

    Returns:
        logging.Logger: Child of the engine logger
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")

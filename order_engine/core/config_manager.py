"""
Configuration manager for the order execution engine.

Handles loading and managing configuration settings from environment variables
and configuration files following SOLID principles and dependency injection.
"""

import configparser
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv


class ConfigurationError(Exception):
    """Custom exception for configuration-related errors."""


DEFAULTS: Dict[str, Any] = {
    "log_level": "INFO",
    "log_dir": "logs",
    "storage_backend": "sqlite",
    "database_path": "orders.db",
    "max_concurrent_orders": 10,
    "orders_per_minute": 100,
    "max_retry_attempts": 3,
    "retry_base_delay": 1.0,
    "retry_strategy": "exponential",
    "slippage_tolerance": 0.01,
    "swap_failure_rate": 0.05,
    "market_update_interval": 30.0,
    "websocket_host": "0.0.0.0",
    "websocket_port": 3000,
    "notification_send_timeout": 5.0,
}


def _parse(key: str, raw: Optional[str], cast: Callable[[str], Any]) -> Any:
    """Cast a raw string setting, falling back to its default."""
    if raw is None or raw == "":
        return DEFAULTS[key]
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from e


class IConfigLoader:
    """Interface for configuration loading strategies."""

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from source.

        Returns:
            Dict[str, Any]: Configuration dictionary

        Raises:
            ConfigurationError: If configuration loading fails
        """
        raise NotImplementedError


class EnvConfigLoader(IConfigLoader):
    """Loads configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Optional[str] = None) -> None:
        """
        Initialize environment configuration loader.

        Args:
            env_file_path: Optional path to .env file
        """
        self._env_file_path = env_file_path

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Returns:
            Dict[str, Any]: Configuration from environment

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        if self._env_file_path:
            load_dotenv(self._env_file_path)
        else:
            load_dotenv()

        env = os.getenv
        return {
            # Logging
            "log_level": env("LOG_LEVEL", DEFAULTS["log_level"]),
            "log_dir": env("LOG_DIR", DEFAULTS["log_dir"]),

            # Order storage
            "storage_backend": env("STORAGE_BACKEND", DEFAULTS["storage_backend"]),
            "database_path": env("DATABASE_PATH", DEFAULTS["database_path"]),

            # Dispatch queue
            "max_concurrent_orders": _parse(
                "max_concurrent_orders", env("MAX_CONCURRENT_ORDERS"), int
            ),
            "orders_per_minute": _parse(
                "orders_per_minute", env("ORDERS_PER_MINUTE"), int
            ),
            "max_retry_attempts": _parse(
                "max_retry_attempts", env("MAX_RETRY_ATTEMPTS"), int
            ),
            "retry_base_delay": _parse(
                "retry_base_delay", env("RETRY_BASE_DELAY"), float
            ),
            "retry_strategy": env("RETRY_STRATEGY", DEFAULTS["retry_strategy"]),

            # Execution
            "slippage_tolerance": _parse(
                "slippage_tolerance", env("SLIPPAGE_TOLERANCE"), float
            ),
            "swap_failure_rate": _parse(
                "swap_failure_rate", env("SWAP_FAILURE_RATE"), float
            ),
            "market_update_interval": _parse(
                "market_update_interval", env("MARKET_UPDATE_INTERVAL"), float
            ),

            # Notification endpoint
            "websocket_host": env("WEBSOCKET_HOST", DEFAULTS["websocket_host"]),
            "websocket_port": _parse("websocket_port", env("WEBSOCKET_PORT"), int),
            "notification_send_timeout": _parse(
                "notification_send_timeout", env("NOTIFICATION_SEND_TIMEOUT"), float
            ),
        }


class IniConfigLoader(IConfigLoader):
    """Loads configuration from INI configuration files."""

    def __init__(self, config_file_path: str) -> None:
        """
        Initialize INI configuration loader.

        Args:
            config_file_path: Path to configuration INI file
        """
        self._config_file_path = Path(config_file_path)

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from INI file.

        Returns:
            Dict[str, Any]: Configuration from INI file

        Raises:
            ConfigurationError: If config file is missing or invalid
        """
        if not self._config_file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_file_path}"
            )

        config = configparser.ConfigParser()
        try:
            config.read(self._config_file_path)

            return {
                "log_level": config.get(
                    "logging", "log_level", fallback=DEFAULTS["log_level"]
                ),
                "log_dir": config.get("logging", "log_dir", fallback=DEFAULTS["log_dir"]),
                "storage_backend": config.get(
                    "storage", "backend", fallback=DEFAULTS["storage_backend"]
                ),
                "database_path": config.get(
                    "storage", "database_path", fallback=DEFAULTS["database_path"]
                ),
                "max_concurrent_orders": config.getint(
                    "queue",
                    "max_concurrent_orders",
                    fallback=DEFAULTS["max_concurrent_orders"],
                ),
                "orders_per_minute": config.getint(
                    "queue", "orders_per_minute", fallback=DEFAULTS["orders_per_minute"]
                ),
                "max_retry_attempts": config.getint(
                    "queue", "max_retry_attempts", fallback=DEFAULTS["max_retry_attempts"]
                ),
                "retry_base_delay": config.getfloat(
                    "queue", "retry_base_delay", fallback=DEFAULTS["retry_base_delay"]
                ),
                "retry_strategy": config.get(
                    "queue", "retry_strategy", fallback=DEFAULTS["retry_strategy"]
                ),
                "slippage_tolerance": config.getfloat(
                    "execution",
                    "slippage_tolerance",
                    fallback=DEFAULTS["slippage_tolerance"],
                ),
                "swap_failure_rate": config.getfloat(
                    "execution",
                    "swap_failure_rate",
                    fallback=DEFAULTS["swap_failure_rate"],
                ),
                "market_update_interval": config.getfloat(
                    "execution",
                    "market_update_interval",
                    fallback=DEFAULTS["market_update_interval"],
                ),
                "websocket_host": config.get(
                    "server", "websocket_host", fallback=DEFAULTS["websocket_host"]
                ),
                "websocket_port": config.getint(
                    "server", "websocket_port", fallback=DEFAULTS["websocket_port"]
                ),
                "notification_send_timeout": config.getfloat(
                    "server",
                    "send_timeout",
                    fallback=DEFAULTS["notification_send_timeout"],
                ),
            }
        except (configparser.Error, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration file: {e}") from e


class ConfigManager:
    """
    Central configuration manager for the order execution engine.

    Manages application settings loaded from various sources following
    the Dependency Inversion Principle.
    """

    def __init__(self, config_loader: IConfigLoader) -> None:
        """
        Initialize configuration manager with a config loader.

        Args:
            config_loader: Implementation of IConfigLoader interface
        """
        self._config_loader = config_loader
        self._config: Dict[str, Any] = {}
        self._is_loaded = False

    def load_configuration(self) -> None:
        """
        Load configuration using the injected config loader.

        Raises:
            ConfigurationError: If configuration loading fails
        """
        try:
            self._config = self._config_loader.load_config()
            self._is_loaded = True
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Any: Configuration value

        Raises:
            ConfigurationError: If configuration not loaded
        """
        if not self._is_loaded:
            raise ConfigurationError(
                "Configuration not loaded. Call load_configuration() first."
            )

        return self._config.get(key, default)

    def get_queue_config(self) -> Dict[str, Any]:
        """
        Get dispatch queue settings.

        Returns:
            Dict[str, Any]: Concurrency, throughput and retry settings

        Raises:
            ConfigurationError: If a limit is not positive
        """
        queue_config = {
            "max_concurrent_orders": self.get_config_value(
                "max_concurrent_orders", DEFAULTS["max_concurrent_orders"]
            ),
            "orders_per_minute": self.get_config_value(
                "orders_per_minute", DEFAULTS["orders_per_minute"]
            ),
            "max_retry_attempts": self.get_config_value(
                "max_retry_attempts", DEFAULTS["max_retry_attempts"]
            ),
            "retry_base_delay": self.get_config_value(
                "retry_base_delay", DEFAULTS["retry_base_delay"]
            ),
            "retry_strategy": self.get_config_value(
                "retry_strategy", DEFAULTS["retry_strategy"]
            ),
        }

        for key in ("max_concurrent_orders", "orders_per_minute", "max_retry_attempts"):
            if queue_config[key] < 1:
                raise ConfigurationError(f"{key} must be at least 1")

        return queue_config

    def get_execution_config(self) -> Dict[str, Any]:
        """
        Get order execution settings.

        Returns:
            Dict[str, Any]: Slippage and simulation settings
        """
        slippage = self.get_config_value(
            "slippage_tolerance", DEFAULTS["slippage_tolerance"]
        )
        if not 0.0 <= slippage <= 1.0:
            raise ConfigurationError("slippage_tolerance must be between 0 and 1")

        return {
            "slippage_tolerance": slippage,
            "swap_failure_rate": self.get_config_value(
                "swap_failure_rate", DEFAULTS["swap_failure_rate"]
            ),
            "market_update_interval": self.get_config_value(
                "market_update_interval", DEFAULTS["market_update_interval"]
            ),
        }

    def get_storage_config(self) -> Dict[str, Any]:
        """
        Get order store settings.

        Returns:
            Dict[str, Any]: Storage backend and database path
        """
        backend = self.get_config_value("storage_backend", DEFAULTS["storage_backend"])
        if backend not in ("sqlite", "memory"):
            raise ConfigurationError(f"Unsupported storage backend: {backend}")

        return {
            "backend": backend,
            "database_path": self.get_config_value(
                "database_path", DEFAULTS["database_path"]
            ),
        }

    def get_server_config(self) -> Dict[str, Any]:
        """
        Get notification endpoint settings.

        Returns:
            Dict[str, Any]: WebSocket host and port
        """
        return {
            "host": self.get_config_value("websocket_host", DEFAULTS["websocket_host"]),
            "port": self.get_config_value("websocket_port", DEFAULTS["websocket_port"]),
        }

    def get_notification_config(self) -> Dict[str, Any]:
        """Get subscriber delivery settings."""
        send_timeout = self.get_config_value(
            "notification_send_timeout", DEFAULTS["notification_send_timeout"]
        )
        if send_timeout <= 0:
            raise ConfigurationError("notification_send_timeout must be positive")

        return {"send_timeout": send_timeout}


def create_config_manager(config_source: str = "env") -> ConfigManager:
    """
    Factory function to create ConfigManager with appropriate loader.

    Args:
        config_source: Configuration source type ('env' or 'ini')

    Returns:
        ConfigManager: Configured instance

    Raises:
        ValueError: If config_source is invalid
    """
    if config_source == "env":
        loader = EnvConfigLoader()
    elif config_source == "ini":
        loader = IniConfigLoader("config.ini")
    else:
        raise ValueError(f"Unsupported config source: {config_source}")

    return ConfigManager(loader)

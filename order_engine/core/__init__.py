"""
Core module for order engine infrastructure.

Contains configuration, logging and the exception hierarchy shared by all
other components.
"""

from .config_manager import ConfigManager, ConfigurationError, create_config_manager
from .exceptions import (
    OrderEngineError,
    PermanentOrderError,
    RetryBudgetExhaustedError,
    TransientOrderError,
)

__all__ = [
    "ConfigManager",
    "ConfigurationError",
    "create_config_manager",
    "OrderEngineError",
    "PermanentOrderError",
    "RetryBudgetExhaustedError",
    "TransientOrderError",
]

"""Order execution module for the order engine.

This module provides the lifecycle orchestrator that executes orders and the
dispatch scheduler that decides when, how often and how concurrently they are
processed.
"""

from .dispatch_scheduler import (
    DispatchRecord,
    DispatchScheduler,
    DispatchState,
    IOrderProcessor,
    SchedulerConfig,
    create_dispatch_scheduler,
)
from .order_orchestrator import (
    OrderOrchestrator,
    OrderOrchestratorConfig,
    create_order_orchestrator,
    get_order_priority,
)
from .rate_limiter import AdmissionRateLimiter
from .retry_policies import BackoffType, RetryConfig, RetryPolicy, create_retry_policy

__all__ = [
    "AdmissionRateLimiter",
    "BackoffType",
    "DispatchRecord",
    "DispatchScheduler",
    "DispatchState",
    "IOrderProcessor",
    "OrderOrchestrator",
    "OrderOrchestratorConfig",
    "RetryConfig",
    "RetryPolicy",
    "SchedulerConfig",
    "create_dispatch_scheduler",
    "create_order_orchestrator",
    "create_retry_policy",
    "get_order_priority",
]

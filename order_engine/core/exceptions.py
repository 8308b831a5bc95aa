"""
Exception hierarchy for the order execution engine.

Errors are split into transient conditions, which the dispatch scheduler
retries with backoff, and permanent failures, which move an order straight
to FAILED. The scheduler relies on this classification only; it never
inspects error messages.
"""

from typing import Optional


class OrderEngineError(Exception):
    """Base exception for order engine errors."""

    def __init__(self, message: str, order_id: Optional[str] = None) -> None:
        self.message = message
        self.order_id = order_id
        super().__init__(message)


class TransientOrderError(OrderEngineError):
    """Condition that may resolve on a later dispatch attempt."""


class TargetPriceNotReachedError(TransientOrderError):
    """Raised when a limit order's target price is not met yet."""

    def __init__(
        self,
        order_id: str,
        current_price: float,
        target_price: float,
    ) -> None:
        super().__init__("Target price not reached yet", order_id)
        self.current_price = current_price
        self.target_price = target_price


class LaunchTimeNotReachedError(TransientOrderError):
    """Raised when a sniper order's launch time lies in the future."""

    def __init__(self, order_id: str, seconds_remaining: float) -> None:
        super().__init__("Launch time not reached yet", order_id)
        self.seconds_remaining = seconds_remaining


class SwapExecutionError(TransientOrderError):
    """Raised when a liquidity source fails to execute a swap."""

    def __init__(
        self, message: str, order_id: Optional[str] = None, provider: str = ""
    ) -> None:
        super().__init__(message, order_id)
        self.provider = provider


class QuoteUnavailableError(TransientOrderError):
    """Raised when no liquidity source returned a usable quote."""


class PermanentOrderError(OrderEngineError):
    """Failure that will not resolve by retrying."""


class OrderNotFoundError(PermanentOrderError):
    """Raised when an order id is unknown to the order store."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found", order_id)


class OrderValidationError(PermanentOrderError):
    """Raised for malformed order fields."""

    def __init__(
        self, message: str, order_id: Optional[str] = None, field: str = ""
    ) -> None:
        super().__init__(message, order_id)
        self.field = field


class UnsupportedOrderTypeError(PermanentOrderError):
    """Raised when an order carries a type the engine cannot route."""

    def __init__(self, order_id: str, order_type: str) -> None:
        super().__init__(f"Unsupported order type: {order_type}", order_id)
        self.order_type = order_type


class InvalidTransitionError(PermanentOrderError):
    """Raised when a status change is not in the transition table."""

    def __init__(self, current: str, event: str, order_id: Optional[str] = None) -> None:
        super().__init__(
            f"Invalid transition from {current} on event {event}", order_id
        )
        self.current = current
        self.event = event


class RetryBudgetExhaustedError(OrderEngineError):
    """Raised by the scheduler once an order used up its dispatch attempts."""

    MESSAGE = "Maximum retry attempts exceeded"

    def __init__(
        self,
        order_id: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(self.MESSAGE, order_id)
        self.attempts = attempts
        self.last_error = last_error


class SchedulerClosedError(OrderEngineError):
    """Raised when work is submitted to a scheduler that has shut down."""


class NotificationDeliveryError(OrderEngineError):
    """Raised by a subscriber when a message could not be delivered."""

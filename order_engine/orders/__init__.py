"""Order data model and lifecycle state machine."""

from .models import (
    DexProvider,
    Order,
    OrderStatus,
    OrderSubmission,
    OrderType,
    OrderUpdateMessage,
    Quote,
    SwapResult,
)
from .state_machine import OrderEvent, next_status

__all__ = [
    "DexProvider",
    "Order",
    "OrderEvent",
    "OrderStatus",
    "OrderSubmission",
    "OrderType",
    "OrderUpdateMessage",
    "Quote",
    "SwapResult",
    "next_status",
]

"""Explicit order status transition table.

Lifecycle::

    PENDING -> ROUTING -> BUILDING -> SUBMITTED -> CONFIRMED
      \\-> (any non-terminal state) -> FAILED

Any (status, event) pair missing from the table is rejected.
"""

from enum import Enum
from typing import Dict, Optional, Tuple

from order_engine.core.exceptions import InvalidTransitionError
from order_engine.orders.models import OrderStatus


class OrderEvent(Enum):
    """Events that drive an order through its lifecycle."""

    ROUTE = "route"
    BUILD = "build"
    SUBMIT = "submit"
    CONFIRM = "confirm"
    FAIL = "fail"


TRANSITIONS: Dict[Tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.PENDING, OrderEvent.ROUTE): OrderStatus.ROUTING,
    (OrderStatus.ROUTING, OrderEvent.BUILD): OrderStatus.BUILDING,
    (OrderStatus.BUILDING, OrderEvent.SUBMIT): OrderStatus.SUBMITTED,
    (OrderStatus.SUBMITTED, OrderEvent.CONFIRM): OrderStatus.CONFIRMED,
    (OrderStatus.PENDING, OrderEvent.FAIL): OrderStatus.FAILED,
    (OrderStatus.ROUTING, OrderEvent.FAIL): OrderStatus.FAILED,
    (OrderStatus.BUILDING, OrderEvent.FAIL): OrderStatus.FAILED,
    (OrderStatus.SUBMITTED, OrderEvent.FAIL): OrderStatus.FAILED,
}

# Position along the success path, used to resume partially advanced orders.
STATUS_RANK: Dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.ROUTING: 1,
    OrderStatus.BUILDING: 2,
    OrderStatus.SUBMITTED: 3,
    OrderStatus.CONFIRMED: 4,
}


def next_status(
    current: OrderStatus, event: OrderEvent, order_id: Optional[str] = None
) -> OrderStatus:
    """Return the status reached from ``current`` on ``event``.

    Raises:
        InvalidTransitionError: If the pair is not in the transition table
    """
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current.value, event.value, order_id) from None


def can_transition(current: OrderStatus, event: OrderEvent) -> bool:
    return (current, event) in TRANSITIONS


def has_reached(current: OrderStatus, target: OrderStatus) -> bool:
    """Whether ``current`` is at or past ``target`` on the success path."""
    if current == OrderStatus.FAILED:
        return True
    return STATUS_RANK[current] >= STATUS_RANK[target]

"""Unit tests for the order status transition table."""

import pytest

from order_engine.core.exceptions import InvalidTransitionError, PermanentOrderError
from order_engine.orders.models import OrderStatus
from order_engine.orders.state_machine import (
    OrderEvent,
    can_transition,
    has_reached,
    next_status,
)


class TestNextStatus:
    """Test cases for next_status."""

    def test_success_path(self):
        status = OrderStatus.PENDING
        for event, expected in [
            (OrderEvent.ROUTE, OrderStatus.ROUTING),
            (OrderEvent.BUILD, OrderStatus.BUILDING),
            (OrderEvent.SUBMIT, OrderStatus.SUBMITTED),
            (OrderEvent.CONFIRM, OrderStatus.CONFIRMED),
        ]:
            status = next_status(status, event)
            assert status == expected

    @pytest.mark.parametrize(
        "status",
        [
            OrderStatus.PENDING,
            OrderStatus.ROUTING,
            OrderStatus.BUILDING,
            OrderStatus.SUBMITTED,
        ],
    )
    def test_fail_from_any_non_terminal(self, status):
        assert next_status(status, OrderEvent.FAIL) == OrderStatus.FAILED

    @pytest.mark.parametrize("status", [OrderStatus.CONFIRMED, OrderStatus.FAILED])
    @pytest.mark.parametrize("event", list(OrderEvent))
    def test_terminal_states_reject_everything(self, status, event):
        with pytest.raises(InvalidTransitionError):
            next_status(status, event, order_id="o-1")

    def test_skipping_states_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            next_status(OrderStatus.PENDING, OrderEvent.CONFIRM, order_id="o-2")

        assert isinstance(exc_info.value, PermanentOrderError)
        assert exc_info.value.order_id == "o-2"
        assert exc_info.value.current == "pending"
        assert exc_info.value.event == "confirm"

    def test_backwards_rejected(self):
        assert not can_transition(OrderStatus.BUILDING, OrderEvent.ROUTE)
        assert not can_transition(OrderStatus.SUBMITTED, OrderEvent.BUILD)


class TestHasReached:
    """Test cases for has_reached."""

    def test_forward_positions(self):
        assert has_reached(OrderStatus.BUILDING, OrderStatus.ROUTING)
        assert has_reached(OrderStatus.BUILDING, OrderStatus.BUILDING)
        assert not has_reached(OrderStatus.ROUTING, OrderStatus.SUBMITTED)

    def test_failed_counts_as_reached(self):
        assert has_reached(OrderStatus.FAILED, OrderStatus.CONFIRMED)

"""Order lifecycle orchestrator.

This module provides the OrderOrchestrator class that accepts order
submissions and drives each order through routing, building, submission and
confirmation. Every status change is written through to the order store and
published on the notification channel.

The orchestrator signals failures by raising: transient errors leave the order
in a resumable state for the dispatch scheduler to retry, permanent errors are
turned into a terminal FAILED transition through ``fail``.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from order_engine.core.exceptions import (
    LaunchTimeNotReachedError,
    OrderNotFoundError,
    OrderValidationError,
    SwapExecutionError,
    TargetPriceNotReachedError,
    TransientOrderError,
    UnsupportedOrderTypeError,
)
from order_engine.core.logger import get_module_logger
from order_engine.execution.dispatch_scheduler import IOrderProcessor
from order_engine.notification.order_channel import OrderNotificationChannel
from order_engine.orders.models import (
    Order,
    OrderStatus,
    OrderSubmission,
    OrderType,
    OrderUpdateMessage,
    Quote,
    coerce_order_type,
    to_quantity,
    utc_now,
)
from order_engine.orders.state_machine import OrderEvent, has_reached, next_status
from order_engine.routing.dex_router import DexRouter
from order_engine.storage.order_store import IOrderStore

ORDER_PRIORITIES: Dict[OrderType, int] = {
    OrderType.SNIPER: 10,
    OrderType.LIMIT: 5,
    OrderType.MARKET: 0,
}


def get_order_priority(order_type: Union[OrderType, str]) -> int:
    """Dispatch priority for an order type; unknown types get the lowest."""
    return ORDER_PRIORITIES.get(coerce_order_type(order_type), 0)


@dataclass
class OrderOrchestratorConfig:
    """Configuration for order orchestration.

    Attributes:
        default_slippage: Slippage applied when a submission omits it
        publish_quotes: Whether the BUILDING update carries every quote
        recent_orders_limit: Default page size for recent order listings
    """

    default_slippage: float = 0.01
    publish_quotes: bool = True
    recent_orders_limit: int = 50

    def __post_init__(self) -> None:
        if not 0.0 <= self.default_slippage <= 1.0:
            raise ValueError("default_slippage must be between 0.0 and 1.0")
        if self.recent_orders_limit < 1:
            raise ValueError("recent_orders_limit must be at least 1")


class OrderOrchestrator(IOrderProcessor):
    """Drives orders through their lifecycle against a liquidity router.

    The orchestrator never reschedules work itself and keeps no retry
    counters; a processing attempt either completes, or raises for the
    dispatch scheduler to classify.
    """

    def __init__(
        self,
        store: IOrderStore,
        channel: OrderNotificationChannel,
        router: DexRouter,
        config: Optional[OrderOrchestratorConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize orchestrator with its collaborators.

        Args:
            store: Authoritative order storage
            channel: Per-order notification fanout
            router: Quote fan-out and swap execution
            config: Orchestration settings
            clock: Source of the current UTC time, used for launch checks
        """
        self._store = store
        self._channel = channel
        self._router = router
        self._config = config or OrderOrchestratorConfig()
        self._clock = clock
        self._logger = get_module_logger("order_orchestrator")

        self._submitted_count = 0
        self._processed_count = 0
        self._confirmed_count = 0
        self._failed_count = 0
        self._transient_failure_count = 0

    async def submit(self, submission: Union[OrderSubmission, Dict[str, Any]]) -> str:
        """Validate and persist a new order in PENDING state.

        The order is not scheduled; callers enqueue the returned id.

        Returns:
            str: Identifier of the new order

        Raises:
            OrderValidationError: If the submission is malformed
        """
        if not isinstance(submission, OrderSubmission):
            submission = OrderSubmission.from_dict(submission)
        submission.validate()
        if submission.slippage is None:
            submission = replace(submission, slippage=self._config.default_slippage)

        order = submission.to_order()
        self._store.save(order)
        self._submitted_count += 1

        self._logger.info(
            f"Order {order.id} submitted: {order.type.value} "
            f"{order.amount_in} {order.token_in} -> {order.token_out}"
        )
        await self._publish(order)
        return order.id

    async def process(self, order_id: str) -> None:
        """Run one processing attempt for an order.

        Terminal orders are left untouched. An order left in ROUTING, BUILDING
        or SUBMITTED by an earlier transient failure is re-quoted and
        re-executed without moving its status backwards.

        Raises:
            OrderNotFoundError: If the id is unknown
            TransientOrderError: If the attempt should be retried later
            PermanentOrderError: If the order can never be executed
        """
        order = self._store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.is_terminal:
            self._logger.debug(f"Order {order_id} already {order.status.value}")
            return

        self._processed_count += 1
        try:
            await self._advance(order, OrderStatus.ROUTING, OrderEvent.ROUTE)

            if order.type == OrderType.MARKET:
                await self._execute_market(order)
            elif order.type == OrderType.LIMIT:
                await self._execute_limit(order)
            elif order.type == OrderType.SNIPER:
                await self._execute_sniper(order)
            else:
                raise UnsupportedOrderTypeError(order.id, str(order.type))

        except TransientOrderError as e:
            self._transient_failure_count += 1
            self._logger.info(f"Order {order_id} not completed yet: {e}")
            raise

    async def fail(self, order_id: str, message: str) -> None:
        """Move an order to FAILED with ``message``; no-op if terminal or absent."""
        order = self._store.get(order_id)
        if order is None:
            self._logger.warning(f"Cannot fail unknown order {order_id}")
            return
        if order.is_terminal:
            return

        order.status = next_status(order.status, OrderEvent.FAIL, order.id)
        order.error_message = message
        order.touch()
        self._store.save(order)
        self._failed_count += 1

        self._logger.error(f"Order {order_id} failed: {message}")
        await self._publish(order)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._store.get(order_id)

    def get_recent_orders(self, limit: Optional[int] = None) -> List[Order]:
        return self._store.recent(limit or self._config.recent_orders_limit)

    def get_execution_statistics(self) -> Dict[str, Any]:
        """Get orchestration counters since startup."""
        success_rate = 0.0
        finished = self._confirmed_count + self._failed_count
        if finished > 0:
            success_rate = self._confirmed_count / finished

        return {
            "submitted_orders": self._submitted_count,
            "processed_attempts": self._processed_count,
            "confirmed_orders": self._confirmed_count,
            "failed_orders": self._failed_count,
            "transient_failures": self._transient_failure_count,
            "success_rate": success_rate,
        }

    async def _execute_market(self, order: Order) -> None:
        best, quotes = await self._router.get_best_quote(
            order.token_in, order.token_out, float(order.amount_in)
        )
        await self._execute_with_quote(order, best, quotes)

    async def _execute_limit(self, order: Order) -> None:
        if order.target_price is None:
            raise OrderValidationError(
                "Target price is required for limit orders", order.id, "target_price"
            )

        best, quotes = await self._router.get_best_quote(
            order.token_in, order.token_out, float(order.amount_in)
        )
        current_price = best.amount_out / float(order.amount_in)
        if current_price < order.target_price:
            raise TargetPriceNotReachedError(order.id, current_price, order.target_price)

        self._logger.info(
            f"Limit order {order.id} triggered at {current_price:.6f} "
            f"(target {order.target_price})"
        )
        await self._execute_with_quote(order, best, quotes)

    async def _execute_sniper(self, order: Order) -> None:
        if order.launch_time is None:
            raise OrderValidationError(
                "Launch time is required for sniper orders", order.id, "launch_time"
            )

        now = self._clock()
        if now < order.launch_time:
            raise LaunchTimeNotReachedError(
                order.id, (order.launch_time - now).total_seconds()
            )

        self._logger.info(f"Sniper order {order.id} launching")
        await self._execute_market(order)

    async def _execute_with_quote(
        self, order: Order, quote: Quote, quotes: List[Quote]
    ) -> None:
        order.dex_provider = quote.provider
        extra: Dict[str, Any] = {}
        if self._config.publish_quotes:
            extra["quotes"] = quotes
        await self._advance(order, OrderStatus.BUILDING, OrderEvent.BUILD, extra)
        await self._advance(order, OrderStatus.SUBMITTED, OrderEvent.SUBMIT)

        result = await self._router.execute_swap(order, quote)
        if not result.success:
            raise SwapExecutionError(
                result.error or "Swap execution failed", order.id, quote.provider
            )

        amount_received = to_quantity(
            result.amount_out if result.amount_out is not None else quote.amount_out
        )
        order.tx_hash = result.tx_hash
        order.amount_received = amount_received
        order.executed_price = float(amount_received / order.amount_in)
        await self._advance(order, OrderStatus.CONFIRMED, OrderEvent.CONFIRM)

        self._confirmed_count += 1
        self._logger.info(
            f"Order {order.id} confirmed on {order.dex_provider}: "
            f"received {amount_received:.6f} {order.token_out} "
            f"at {order.executed_price:.6f} tx={order.tx_hash}"
        )

    async def _advance(
        self,
        order: Order,
        target: OrderStatus,
        event: OrderEvent,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        if has_reached(order.status, target):
            # Resumed attempt: keep the status, persist refreshed fields only.
            self._store.save(order)
            return

        order.status = next_status(order.status, event, order.id)
        order.touch()
        self._store.save(order)
        await self._publish(order, extra)

    async def _publish(self, order: Order, extra: Optional[Dict[str, Any]] = None) -> None:
        message = OrderUpdateMessage.from_order(order, extra)
        await self._channel.publish(order.id, message)


def create_order_orchestrator(
    store: IOrderStore,
    channel: OrderNotificationChannel,
    router: DexRouter,
    default_slippage: float = 0.01,
) -> OrderOrchestrator:
    """Factory function to create OrderOrchestrator instance.

    Args:
        store: Order storage backend
        channel: Notification channel
        router: Liquidity router
        default_slippage: Slippage applied when a submission omits it

    Returns:
        OrderOrchestrator: Configured orchestrator
    """
    config = OrderOrchestratorConfig(default_slippage=default_slippage)
    return OrderOrchestrator(store, channel, router, config)

"""Per-order notification channel.

Subscribers register against a single order id and receive only that order's
status updates, in publication order. Nothing is buffered: a subscriber that
registers late sees only updates published after it registered.

Each send is bounded by a timeout so a stalled subscriber cannot hold up the
order that is publishing.
"""

import asyncio
import threading
from typing import Any, Dict, List, Optional, Set, Union

from order_engine.core.logger import get_module_logger
from order_engine.notification.subscribers import ISubscriber
from order_engine.orders.models import OrderUpdateMessage

DEFAULT_SEND_TIMEOUT = 5.0


class OrderNotificationChannel:
    """Fans order update messages out to the subscribers of each order id.

    A subscriber whose send fails or times out, or that reports itself closed,
    is unregistered during the publish; the remaining subscribers still receive
    the message.

    Attributes:
        _subscribers: Mapping of order id to its registered subscriber handles
        _lock: Guards registry mutations
        _send_timeout: Seconds a single subscriber send may take
    """

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT) -> None:
        if send_timeout <= 0:
            raise ValueError("send_timeout must be positive")

        self._send_timeout = send_timeout
        self._subscribers: Dict[str, Set[ISubscriber]] = {}
        self._lock: threading.RLock = threading.RLock()
        self._logger = get_module_logger("order_channel")

    def register(self, order_id: str, subscriber: ISubscriber) -> None:
        """Register a subscriber for one order id.

        Raises:
            ValueError: If order_id is empty
        """
        if not order_id:
            raise ValueError("Order id cannot be empty")

        with self._lock:
            self._subscribers.setdefault(order_id, set()).add(subscriber)

        self._logger.info(f"Subscriber registered for order {order_id}")

    def unregister(self, order_id: str, subscriber: ISubscriber) -> bool:
        """Remove a subscriber; returns False if it was not registered."""
        with self._lock:
            subscribers = self._subscribers.get(order_id)
            if not subscribers or subscriber not in subscribers:
                return False

            subscribers.discard(subscriber)
            if not subscribers:
                del self._subscribers[order_id]

        self._logger.info(f"Subscriber unregistered for order {order_id}")
        return True

    async def publish(
        self, order_id: str, message: Union[OrderUpdateMessage, Dict[str, Any]]
    ) -> int:
        """Deliver a message to every subscriber of ``order_id``.

        Returns:
            int: Number of subscribers that received the message
        """
        with self._lock:
            subscribers = list(self._subscribers.get(order_id, ()))

        if not subscribers:
            return 0

        payload = message.to_dict() if isinstance(message, OrderUpdateMessage) else message

        open_subscribers: List[ISubscriber] = []
        for subscriber in subscribers:
            if subscriber.is_open:
                open_subscribers.append(subscriber)
            else:
                self.unregister(order_id, subscriber)

        results = await asyncio.gather(
            *(
                asyncio.wait_for(subscriber.send(payload), self._send_timeout)
                for subscriber in open_subscribers
            ),
            return_exceptions=True,
        )

        delivered = 0
        for subscriber, result in zip(open_subscribers, results):
            if isinstance(result, asyncio.TimeoutError):
                self._logger.warning(
                    f"Dropping subscriber for order {order_id} after send timed out "
                    f"({self._send_timeout}s)"
                )
                self.unregister(order_id, subscriber)
            elif isinstance(result, Exception):
                self._logger.warning(
                    f"Dropping subscriber for order {order_id} after failed send: {result}"
                )
                self.unregister(order_id, subscriber)
            elif isinstance(result, BaseException):
                raise result
            else:
                delivered += 1

        return delivered

    def get_subscriber_count(self, order_id: Optional[str] = None) -> int:
        """Subscribers for one order id, or across all ids when omitted."""
        with self._lock:
            if order_id is not None:
                return len(self._subscribers.get(order_id, ()))
            return sum(len(subscribers) for subscribers in self._subscribers.values())

    async def close_all(self) -> None:
        """Close and unregister every subscriber."""
        with self._lock:
            subscribers = [
                subscriber
                for registered in self._subscribers.values()
                for subscriber in registered
            ]
            self._subscribers.clear()

        for subscriber in subscribers:
            try:
                await subscriber.close()
            except Exception as e:
                self._logger.warning(f"Error closing subscriber: {e}")

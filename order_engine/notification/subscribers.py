"""
Subscriber adapters for per-order update delivery.

A subscriber is the handle registered with the notification channel for one
order id. Sending raises ``NotificationDeliveryError`` when the peer is gone or
rejects the message; the channel then unregisters the handle.
"""

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import aiohttp
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from order_engine.core.exceptions import NotificationDeliveryError


class ISubscriber(ABC):
    """Interface for an order update observer."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the subscriber can still receive messages."""

    @abstractmethod
    async def send(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one update.

        Args:
            payload: Wire form of an ``OrderUpdateMessage``

        Raises:
            NotificationDeliveryError: If delivery failed
        """

    async def close(self) -> None:
        """Release resources held by the subscriber."""


class CallbackSubscriber(ISubscriber):
    """Delivers updates to a synchronous or asynchronous callable."""

    def __init__(self, callback: Callable[[Dict[str, Any]], Any]) -> None:
        if not callable(callback):
            raise TypeError("Callback must be callable")
        self._callback = callback
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def send(self, payload: Dict[str, Any]) -> None:
        result = self._callback(payload)
        if inspect.isawaitable(result):
            await result

    async def close(self) -> None:
        self._open = False


class WebSocketSubscriber(ISubscriber):
    """Sends updates as JSON text frames over a ``websockets`` connection."""

    def __init__(self, connection: Any) -> None:
        self._connection = connection
        self._failed = False

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def is_open(self) -> bool:
        return not self._failed and self._connection.state == State.OPEN

    async def send(self, payload: Dict[str, Any]) -> None:
        try:
            await self._connection.send(json.dumps(payload))
        except ConnectionClosed as e:
            self._failed = True
            raise NotificationDeliveryError(f"WebSocket closed: {e}") from e

    async def close(self) -> None:
        self._failed = True
        await self._connection.close()


class WebhookSubscriber(ISubscriber):
    """Posts updates as JSON to an HTTP endpoint with ``aiohttp``."""

    def __init__(
        self,
        url: str,
        timeout: int = 10,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize webhook subscriber.

        Args:
            url: Endpoint receiving POSTed updates
            timeout: Request timeout in seconds
            session: Shared client session; one is created lazily otherwise
        """
        if not url:
            raise ValueError("Webhook URL cannot be empty")

        self._url = url
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def send(self, payload: Dict[str, Any]) -> None:
        if not self._session:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)

        try:
            async with self._session.post(
                self._url, json=payload, headers={"Content-Type": "application/json"}
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise NotificationDeliveryError(
                        f"Webhook error {response.status}: {error_text}"
                    )
        except aiohttp.ClientError as e:
            raise NotificationDeliveryError(f"HTTP client error: {e}") from e
        except asyncio.TimeoutError as e:
            raise NotificationDeliveryError(
                f"Request timeout after {self._timeout}s"
            ) from e

    async def close(self) -> None:
        self._open = False
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

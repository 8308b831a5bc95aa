"""
WebSocket endpoint streaming live order updates.

Clients connect to ``/ws/orders/{order_id}`` and receive a greeting followed by
every status update published for that order. The connection is registered
with the notification channel for its lifetime only.
"""

import re
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Optional, Set

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from order_engine.core.exceptions import NotificationDeliveryError
from order_engine.core.logger import get_module_logger
from order_engine.notification.order_channel import OrderNotificationChannel
from order_engine.notification.subscribers import WebSocketSubscriber

ORDER_PATH_PATTERN = re.compile(r"^/ws/orders/(?P<order_id>[^/?#]+)/?(?:\?.*)?$")


def parse_order_path(path: str) -> Optional[str]:
    """Extract the order id from a request path, or None if it does not match."""
    match = ORDER_PATH_PATTERN.match(path)
    return match.group("order_id") if match else None


class OrderUpdateServer:
    """Serves per-order update streams over WebSocket."""

    def __init__(
        self,
        channel: OrderNotificationChannel,
        host: str = "0.0.0.0",
        port: int = 3000,
    ) -> None:
        """
        Initialize server.

        Args:
            channel: Channel the connections subscribe to
            host: Interface to bind
            port: Port to bind, 0 for an ephemeral port
        """
        self._channel = channel
        self._host = host
        self._port = port
        self._server: Optional[Server] = None
        self._connections: Set[ServerConnection] = set()
        self._logger = get_module_logger("websocket_server")

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        """Bound port, resolved once the server is listening."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._port

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def start(self) -> None:
        if self._server is not None:
            self._logger.warning("WebSocket server already running")
            return

        self._server = await serve(
            self._handle_connection,
            self._host,
            self._port,
            process_request=self._process_request,
        )
        self._logger.info(f"WebSocket server listening on {self._host}:{self.port}")

    async def stop(self) -> None:
        if self._server is None:
            return

        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._connections.clear()
        self._logger.info("WebSocket server stopped")

    def _process_request(self, connection: ServerConnection, request: Any) -> Any:
        if parse_order_path(request.path) is None:
            return connection.respond(HTTPStatus.NOT_FOUND, "Unknown path\n")
        return None

    async def _handle_connection(self, connection: ServerConnection) -> None:
        order_id = parse_order_path(connection.request.path)
        if order_id is None:
            await connection.close(code=1008, reason="Unknown path")
            return

        subscriber = WebSocketSubscriber(connection)
        self._connections.add(connection)
        self._channel.register(order_id, subscriber)
        self._logger.info(f"WebSocket connected for order {order_id}")

        try:
            await subscriber.send(
                {
                    "type": "connected",
                    "orderId": order_id,
                    "message": "WebSocket connected for order updates",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            )
            # Inbound frames carry no meaning; drain until the client closes.
            async for _ in connection:
                pass
        except (ConnectionClosed, NotificationDeliveryError) as e:
            self._logger.debug(f"WebSocket for order {order_id} closed: {e}")
        finally:
            self._channel.unregister(order_id, subscriber)
            self._connections.discard(connection)
            self._logger.info(f"WebSocket disconnected for order {order_id}")

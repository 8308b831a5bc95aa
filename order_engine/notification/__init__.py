"""Live order update delivery."""

from .order_channel import OrderNotificationChannel
from .subscribers import (
    CallbackSubscriber,
    ISubscriber,
    WebhookSubscriber,
    WebSocketSubscriber,
)
from .websocket_server import OrderUpdateServer

__all__ = [
    "CallbackSubscriber",
    "ISubscriber",
    "OrderNotificationChannel",
    "OrderUpdateServer",
    "WebhookSubscriber",
    "WebSocketSubscriber",
]

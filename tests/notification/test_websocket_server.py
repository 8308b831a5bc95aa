"""
Tests for the order update WebSocket endpoint.

Runs the server on an ephemeral local port and connects with the
``websockets`` client.
"""

import asyncio
import json

import pytest
from websockets.asyncio.client import connect
from websockets.exceptions import InvalidStatus

from order_engine.notification.order_channel import OrderNotificationChannel
from order_engine.notification.websocket_server import (
    OrderUpdateServer,
    parse_order_path,
)


class TestParseOrderPath:
    """Test cases for parse_order_path."""

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/ws/orders/abc-123", "abc-123"),
            ("/ws/orders/abc-123/", "abc-123"),
            ("/ws/orders/abc?token=x", "abc"),
            ("/ws/orders/", None),
            ("/ws/orders/a/b", None),
            ("/health", None),
        ],
    )
    def test_paths(self, path, expected):
        assert parse_order_path(path) == expected


async def wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestOrderUpdateServer:
    """Test cases for OrderUpdateServer."""

    @pytest.mark.asyncio
    async def test_greeting_then_updates(self):
        channel = OrderNotificationChannel()
        server = OrderUpdateServer(channel, host="127.0.0.1", port=0)
        await server.start()
        try:
            uri = f"ws://127.0.0.1:{server.port}/ws/orders/order-1"
            async with connect(uri) as websocket:
                greeting = json.loads(await websocket.recv())
                assert greeting["type"] == "connected"
                assert greeting["orderId"] == "order-1"
                assert greeting["message"] == "WebSocket connected for order updates"
                assert channel.get_subscriber_count("order-1") == 1
                assert server.connection_count == 1

                await channel.publish("order-2", {"orderId": "order-2"})
                await channel.publish(
                    "order-1", {"orderId": "order-1", "status": "routing"}
                )

                update = json.loads(await websocket.recv())
                assert update == {"orderId": "order-1", "status": "routing"}

            await wait_for(lambda: channel.get_subscriber_count("order-1") == 0)
            assert server.connection_count == 0
        finally:
            await server.stop()

        assert not server.is_running

    @pytest.mark.asyncio
    async def test_unknown_path_rejected(self):
        channel = OrderNotificationChannel()
        server = OrderUpdateServer(channel, host="127.0.0.1", port=0)
        await server.start()
        try:
            with pytest.raises(InvalidStatus) as exc_info:
                async with connect(f"ws://127.0.0.1:{server.port}/orders"):
                    pass
            assert exc_info.value.response.status_code == 404
            assert channel.get_subscriber_count() == 0
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        server = OrderUpdateServer(OrderNotificationChannel(), host="127.0.0.1", port=0)

        await server.stop()
        await server.start()
        await server.stop()
        await server.stop()

        assert not server.is_running

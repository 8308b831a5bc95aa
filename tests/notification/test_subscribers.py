"""
Unit tests for subscriber adapters.

Tests callback delivery, WebSocket frame sending, and webhook posting with a
mocked aiohttp session.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, Mock

import aiohttp
import pytest
from websockets.exceptions import ConnectionClosedOK
from websockets.protocol import State

from order_engine.core.exceptions import NotificationDeliveryError
from order_engine.notification.subscribers import (
    CallbackSubscriber,
    WebhookSubscriber,
    WebSocketSubscriber,
)


def make_session(status: int = 200, text: str = "", error: Exception = None) -> Mock:
    """Build a session whose ``post`` works as an async context manager."""
    response = Mock(status=status)
    response.text = AsyncMock(return_value=text)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = Mock()
    if error is not None:
        session.post = Mock(side_effect=error)
    else:
        session.post = Mock(return_value=context)
    session.close = AsyncMock()
    return session


class TestCallbackSubscriber:
    """Test cases for CallbackSubscriber."""

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            CallbackSubscriber("not callable")

    @pytest.mark.asyncio
    async def test_sync_callback(self):
        received = []
        subscriber = CallbackSubscriber(received.append)

        await subscriber.send({"status": "routing"})

        assert received == [{"status": "routing"}]

    @pytest.mark.asyncio
    async def test_async_callback(self):
        callback = AsyncMock()
        subscriber = CallbackSubscriber(callback)

        await subscriber.send({"status": "building"})

        callback.assert_awaited_once_with({"status": "building"})

    @pytest.mark.asyncio
    async def test_close(self):
        subscriber = CallbackSubscriber(Mock())
        assert subscriber.is_open

        await subscriber.close()

        assert not subscriber.is_open


class TestWebSocketSubscriber:
    """Test cases for WebSocketSubscriber."""

    def _connection(self, state=State.OPEN):
        connection = Mock()
        connection.state = state
        connection.send = AsyncMock()
        connection.close = AsyncMock()
        return connection

    @pytest.mark.asyncio
    async def test_send_json_frame(self):
        connection = self._connection()
        subscriber = WebSocketSubscriber(connection)

        await subscriber.send({"orderId": "o-1", "status": "confirmed"})

        frame = connection.send.await_args.args[0]
        assert json.loads(frame) == {"orderId": "o-1", "status": "confirmed"}

    def test_is_open_follows_connection_state(self):
        assert WebSocketSubscriber(self._connection()).is_open
        assert not WebSocketSubscriber(self._connection(State.CLOSED)).is_open

    @pytest.mark.asyncio
    async def test_closed_connection_raises_delivery_error(self):
        connection = self._connection()
        connection.send = AsyncMock(side_effect=ConnectionClosedOK(None, None))
        subscriber = WebSocketSubscriber(connection)

        with pytest.raises(NotificationDeliveryError):
            await subscriber.send({"status": "failed"})

        assert not subscriber.is_open

    @pytest.mark.asyncio
    async def test_close_closes_connection(self):
        connection = self._connection()
        subscriber = WebSocketSubscriber(connection)

        await subscriber.close()

        connection.close.assert_awaited_once()
        assert not subscriber.is_open


class TestWebhookSubscriber:
    """Test cases for WebhookSubscriber."""

    def test_empty_url_rejected(self):
        with pytest.raises(ValueError, match="Webhook URL cannot be empty"):
            WebhookSubscriber("")

    @pytest.mark.asyncio
    async def test_successful_post(self):
        session = make_session(status=204)
        subscriber = WebhookSubscriber("https://hooks.test/orders", session=session)

        await subscriber.send({"orderId": "o-1", "status": "pending"})

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == "https://hooks.test/orders"
        assert kwargs["json"] == {"orderId": "o-1", "status": "pending"}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        session = make_session(status=500, text="Internal Server Error")
        subscriber = WebhookSubscriber("https://hooks.test/orders", session=session)

        with pytest.raises(NotificationDeliveryError, match="Webhook error 500"):
            await subscriber.send({"status": "pending"})

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        session = make_session(error=aiohttp.ClientError("connection refused"))
        subscriber = WebhookSubscriber("https://hooks.test/orders", session=session)

        with pytest.raises(NotificationDeliveryError, match="HTTP client error"):
            await subscriber.send({"status": "pending"})

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        session = make_session(error=asyncio.TimeoutError())
        subscriber = WebhookSubscriber(
            "https://hooks.test/orders", timeout=3, session=session
        )

        with pytest.raises(NotificationDeliveryError, match="Request timeout after 3s"):
            await subscriber.send({"status": "pending"})

    @pytest.mark.asyncio
    async def test_shared_session_not_closed(self):
        session = make_session()
        subscriber = WebhookSubscriber("https://hooks.test/orders", session=session)

        await subscriber.close()

        session.close.assert_not_awaited()
        assert not subscriber.is_open

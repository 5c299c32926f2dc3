"""WebSocket fan-out of crypto_prices row changes."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from etf_backend.services.change_feed import Subscription, price_feed

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _unsubscribe_on_disconnect(websocket: WebSocket, subscription: Subscription):
    """Clients only listen; the first disconnect frame ends the subscription."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        subscription.unsubscribe()


@router.websocket("/ws/prices")
async def price_stream(websocket: WebSocket):
    """Forward every price change as ``{"type", "new", "old"}`` JSON.

    The subscription is live before the first message is sent, so a client
    that reloads after receiving the ``subscribed`` frame misses nothing.
    """
    await websocket.accept()
    subscription = await price_feed.subscribe()
    watcher = asyncio.create_task(_unsubscribe_on_disconnect(websocket, subscription))
    try:
        await websocket.send_json({"type": "subscribed"})
        async for event in subscription:
            await websocket.send_json(event.model_dump(mode="json"))
        if websocket.client_state == WebSocketState.CONNECTED:
            if subscription.overflowed:
                await websocket.close(code=1013, reason="Subscriber fell behind")
            else:
                await websocket.close(code=1001, reason="Server shutting down")
    except WebSocketDisconnect:
        logger.debug("Price stream client disconnected")
    except Exception as exc:
        logger.exception(f"Price stream error: {exc}")
        try:
            await websocket.close(code=1011, reason="Stream error")
        except RuntimeError:
            pass
    finally:
        watcher.cancel()
        subscription.unsubscribe()

"""Realtime price client: snapshot over HTTP, live changes over a websocket.

Connection lifecycle: DISCONNECTED -> SUBSCRIBING -> CONNECTED -> DISCONNECTED.
Every transition to CONNECTED starts a full reload from GET /api/prices,
because the stream never replays what was missed while disconnected.
Events that arrive while the reload is in flight are buffered and applied
on top of the snapshot.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

import httpx
import websockets

from etf_backend.client.price_cache import ClientPriceCache
from etf_backend.schemas.price import ChangeEvent, ChangeKind, PriceRecord

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Awaitable[list[PriceRecord]]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    CONNECTED = "connected"


class StreamClosed(Exception):
    """The change stream dropped."""


class PriceStream(Protocol):
    async def connect(self) -> None:
        """Open the stream; return once the subscription is live."""
        ...

    async def recv(self) -> ChangeEvent:
        """Next change event. Raises StreamClosed when the stream drops."""
        ...

    async def close(self) -> None: ...


class WebSocketPriceStream:
    """PriceStream over the service's /ws/prices endpoint."""

    def __init__(self, url: str):
        self.url = url
        self._ws = None

    async def connect(self) -> None:
        try:
            self._ws = await websockets.connect(self.url)
            frame = json.loads(await self._ws.recv())
        except (OSError, websockets.WebSocketException) as e:
            raise StreamClosed(f"Could not subscribe to {self.url}: {e}") from e
        except ValueError as e:
            raise StreamClosed(f"Unreadable handshake frame: {e}") from e
        if not isinstance(frame, dict) or frame.get("type") != "subscribed":
            raise StreamClosed(f"Unexpected handshake frame: {frame}")

    async def recv(self) -> ChangeEvent:
        if self._ws is None:
            raise StreamClosed("Stream is not connected")
        try:
            raw = await self._ws.recv()
        except websockets.ConnectionClosed as e:
            raise StreamClosed(str(e)) from e
        try:
            return ChangeEvent.model_validate(json.loads(raw))
        except ValueError as e:
            # ValidationError and JSONDecodeError are both ValueErrors
            raise StreamClosed(f"Malformed change frame: {e}") from e

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()


class HttpSnapshotLoader:
    """Loads the authoritative price list from GET /api/prices."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=10.0)

    async def __call__(self) -> list[PriceRecord]:
        response = await self._client.get("/api/prices")
        response.raise_for_status()
        return [PriceRecord.model_validate(row) for row in response.json()]

    async def close(self):
        await self._client.aclose()


class RealtimePriceClient:
    """Keeps a ClientPriceCache in sync with the service.

    Lookups go straight to ``cache`` and never block, whatever the state.
    """

    def __init__(
        self,
        loader: SnapshotLoader,
        stream_factory: Callable[[], PriceStream],
        cache: ClientPriceCache | None = None,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ):
        self.cache = cache or ClientPriceCache()
        self.state = ConnectionState.DISCONNECTED
        self.last_error: str | None = None
        self._loader = loader
        self._stream_factory = stream_factory
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

        self._stream: PriceStream | None = None
        self._reload_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self._buffer: list[ChangeEvent] | None = None
        self._closed = False

    @classmethod
    def for_service(cls, base_url: str, **kwargs) -> "RealtimePriceClient":
        """Client wired to a running service at ``base_url`` (http or https)."""
        ws_url = base_url.replace("http", "ws", 1).rstrip("/") + "/ws/prices"
        return cls(
            loader=HttpSnapshotLoader(base_url),
            stream_factory=lambda: WebSocketPriceStream(ws_url),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_price(self, symbol: str) -> PriceRecord | None:
        return self.cache.get_price(symbol)

    def get_price_change(self, symbol: str) -> float:
        return self.cache.get_price_change(symbol)

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self):
        """Subscribe and start the reload. Returns once the handshake completes."""
        if self._closed:
            raise RuntimeError("Client is closed")
        self.state = ConnectionState.SUBSCRIBING
        stream = self._stream_factory()
        try:
            await stream.connect()
        except BaseException:
            self.state = ConnectionState.DISCONNECTED
            await stream.close()
            raise
        self._stream = stream
        self.state = ConnectionState.CONNECTED
        self._buffer = []
        self._reload_task = asyncio.create_task(self._reload())

    def start(self) -> asyncio.Task:
        """Run the receive/reconnect loop in the background."""
        if self._run_task is None:
            self._run_task = asyncio.create_task(self.run())
        return self._run_task

    async def run(self):
        """Receive events until closed, reconnecting with exponential backoff."""
        delay = self._backoff_initial
        while not self._closed:
            try:
                if self._stream is None:
                    await self.connect()
                delay = self._backoff_initial
                await self._receive_loop()
            except (StreamClosed, OSError) as e:
                self.last_error = str(e)
                logger.warning(f"Price stream dropped: {e}")
            except Exception as e:
                self.last_error = str(e)
                logger.exception(f"Price stream failed: {e}")
            await self._drop_stream()
            if self._closed:
                break
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._backoff_max)

    async def close(self):
        """Unsubscribe. No event is applied once this returns; safe to repeat."""
        if self._closed:
            return
        self._closed = True
        current = asyncio.current_task()
        if self._run_task is not None and self._run_task is not current:
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Price stream loop ended with error: {e}")
        await self._drop_stream()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _receive_loop(self):
        while not self._closed and self._stream is not None:
            event = await self._stream.recv()
            self._handle(event)

    def _handle(self, event: ChangeEvent):
        if self._closed:
            return
        if self._buffer is not None:
            self._buffer.append(event)
        else:
            self.cache.apply(event)

    async def _reload(self):
        try:
            records = await self._loader()
        except Exception as e:
            # Keep the live view moving; the next reconnect reloads again
            logger.warning(f"Price reload failed: {e}")
            self.last_error = str(e)
            records = None
        if self._closed:
            return

        buffered, self._buffer = self._buffer or [], None
        if records is not None:
            self.cache.load_snapshot(records)
        for event in buffered:
            if not self._already_in_snapshot(event):
                self.cache.apply(event)
        logger.debug(f"Price reload complete: {len(self.cache)} symbols, {len(buffered)} buffered events")

    def _already_in_snapshot(self, event: ChangeEvent) -> bool:
        if event.type == ChangeKind.DELETE or event.new is None:
            return False
        current = self.cache.get_price(event.new.symbol)
        if current is None or current.updated_at is None or event.new.updated_at is None:
            return False
        return event.new.updated_at <= current.updated_at

    async def _drop_stream(self):
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
            try:
                await self._reload_task
            except asyncio.CancelledError:
                pass
        self._reload_task = None
        self._buffer = None
        stream, self._stream = self._stream, None
        self.state = ConnectionState.DISCONNECTED
        if stream is not None:
            try:
                await stream.close()
            except (StreamClosed, OSError) as e:
                logger.debug(f"Error closing price stream: {e}")

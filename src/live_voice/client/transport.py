"""WebSocket transport for the Live API voice service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import websockets

from ..core.errors import ConnectionFailed, UnknownMessage
from .protocol import (
    InboundMessage,
    LiveConfig,
    RealtimeInputMessage,
    SetupComplete,
    SetupMessage,
    dump,
    parse_server_message,
)

logger = logging.getLogger("LiveTransport")

DEFAULT_SERVICE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)

DROP_OLDEST = "drop_oldest"
DROP_NEWEST = "drop_newest"
OVERFLOW_POLICIES = (DROP_OLDEST, DROP_NEWEST)


@dataclass
class TransportCallbacks:
    """Event hooks fired on the event loop that called connect()."""
    on_open: Callable[[], None]
    on_message: Callable[[InboundMessage], None]
    on_error: Callable[[BaseException], None]
    on_close: Callable[[], None]


class LiveTransport:
    """
    Owns the single full-duplex connection to the voice service.

    connect() returns immediately; the outcome arrives via callbacks. During the
    connection attempt exactly one of on_open / on_error fires. Once open, an
    abnormal drop fires on_error and a clean remote close fires on_close.
    """

    def __init__(
        self,
        url: str = DEFAULT_SERVICE_URL,
        api_key: Optional[str] = None,
        *,
        open_timeout_s: float = 10.0,
        send_queue_size: int = 64,
        overflow_policy: str = DROP_OLDEST,
    ):
        if overflow_policy not in OVERFLOW_POLICIES:
            raise ValueError(f"overflow_policy must be one of {OVERFLOW_POLICIES}")
        self._url = f"{url}?key={api_key}" if api_key else url
        self._open_timeout_s = open_timeout_s
        self._send_queue_size = send_queue_size
        self._overflow_policy = overflow_policy

        self._ws: Optional[websockets.ClientConnection] = None
        self._callbacks: Optional[TransportCallbacks] = None
        self._config: Optional[LiveConfig] = None
        self._outbound: Optional[asyncio.Queue[bytes]] = None
        self._task: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None
        self._open = False
        self._closed = False
        self.frames_sent = 0
        self.frames_dropped = 0

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    def connect(self, config: LiveConfig, callbacks: TransportCallbacks) -> asyncio.Task:
        """Start connecting in the background and return the connection task."""
        if self._task is not None:
            raise RuntimeError("LiveTransport.connect() may only be called once")
        self._config = config
        self._callbacks = callbacks
        self._outbound = asyncio.Queue(maxsize=self._send_queue_size)
        self._task = asyncio.create_task(self._run(), name="live-transport")
        return self._task

    def send(self, frame: bytes) -> bool:
        """
        Queue one PCM16 frame for transmission. Returns True if this frame was
        queued, even when an older one was evicted to make room; evictions are
        counted in frames_dropped.
        """
        if not self.is_open or self._outbound is None:
            return False
        if self._outbound.full():
            self.frames_dropped += 1
            if self._overflow_policy == DROP_NEWEST:
                logger.warning("Send queue full, dropping newest frame")
                return False
            self._outbound.get_nowait()
            logger.warning("Send queue full, dropping oldest frame")
        self._outbound.put_nowait(frame)
        return True

    async def close(self) -> None:
        """Close the connection. No on_message fires after this. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._open = False
        current = asyncio.current_task()
        for task in (self._sender, self._task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if self._ws is not None:
            try:
                await self._ws.close()
            except (websockets.WebSocketException, OSError) as e:
                logger.warning("Error closing WebSocket: %s", e)
            self._ws = None
            logger.info("Disconnected")

    async def _run(self) -> None:
        assert self._callbacks is not None and self._config is not None
        try:
            await asyncio.wait_for(self._handshake(), timeout=self._open_timeout_s)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            await self._fail_attempt(
                ConnectionFailed(f"Live API did not open within {self._open_timeout_s}s")
            )
            return
        except ConnectionFailed as e:
            await self._fail_attempt(e)
            return
        except (OSError, websockets.WebSocketException, UnknownMessage) as e:
            await self._fail_attempt(ConnectionFailed(f"Could not connect to Live API: {e}"))
            return

        if self._closed:
            return
        self._open = True
        logger.info("Connected to Live API")
        self._sender = asyncio.create_task(self._send_loop(), name="live-transport-send")
        self._callbacks.on_open()
        await self._receive_loop()

    async def _handshake(self) -> None:
        self._ws = await websockets.connect(self._url, max_size=None)
        await self._ws.send(dump(SetupMessage.from_config(self._config)))
        raw = await self._ws.recv()
        messages = parse_server_message(raw)
        if not any(isinstance(m, SetupComplete) for m in messages):
            raise ConnectionFailed(f"Expected setupComplete, got {messages!r}")

    async def _fail_attempt(self, error: ConnectionFailed) -> None:
        logger.error("Connection attempt failed: %s", error)
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (websockets.WebSocketException, OSError) as e:
                logger.debug("Error closing half-open WebSocket: %s", e)
        if not self._closed:
            self._callbacks.on_error(error)

    async def _send_loop(self) -> None:
        assert self._outbound is not None and self._config is not None
        rate = self._config.input_sample_rate
        while True:
            frame = await self._outbound.get()
            if self._ws is None or self._closed:
                return
            try:
                await self._ws.send(dump(RealtimeInputMessage.from_pcm(frame, rate)))
            except websockets.ConnectionClosed:
                # The receive loop reports the close.
                logger.debug("Send stopped: connection closed")
                return
            self.frames_sent += 1

    async def _receive_loop(self) -> None:
        assert self._ws is not None and self._callbacks is not None
        try:
            async for raw in self._ws:
                if self._closed:
                    break
                try:
                    messages = parse_server_message(raw)
                except UnknownMessage as e:
                    logger.warning("Ignoring inbound message: %s", e)
                    continue
                for message in messages:
                    if self._closed:
                        break
                    self._callbacks.on_message(message)
        except websockets.ConnectionClosedError as e:
            if not self._closed:
                logger.error("WebSocket dropped: %s", e)
                self._open = False
                self._callbacks.on_error(ConnectionFailed(f"Connection dropped: {e}"))
            return
        if not self._closed:
            logger.info("WebSocket connection closed by server")
            self._open = False
            self._callbacks.on_close()

"""Session controller: wires capture, transport and playback together."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from ..audio import codec
from ..audio.input import AudioFormat, CapturePipeline
from ..audio.output import PlaybackScheduler
from ..audio.types import AudioChunk
from ..client.protocol import GoAway, InterruptionSignal, LiveConfig, TextChunk, TurnComplete
from ..client.transport import LiveTransport, TransportCallbacks
from ..core.errors import ConnectionFailed, DeviceUnavailable, MalformedAudioData
from ..core.events import (
    ALLOWED_TRANSITIONS,
    CaptureFrame,
    ConnectTimedOut,
    SessionEvent,
    SessionState,
    StartRequested,
    StopRequested,
    TransportClosed,
    TransportError,
    TransportMessage,
    TransportOpened,
)
from . import state as status
from .state import Session

if TYPE_CHECKING:
    from ..config.settings import LiveVoiceConfig

logger = logging.getLogger("SessionController")

# Capture frames waiting in the event queue before new ones are dropped.
MAX_PENDING_FRAMES = 32

# Malformed audio chunks in a row before the session is failed.
MAX_MALFORMED_CHUNKS = 8

_LIVE_STATES = (SessionState.CONNECTING, SessionState.ACTIVE)


class SessionController:
    """
    Main orchestrator for one live voice session at a time.

    Manages:
    - Capture pipeline (mic -> PCM16 frames)
    - Live transport (frames out, audio/interruptions in)
    - Playback scheduler (decoded audio -> speaker)

    Every input (user requests, transport callbacks, capture frames) is posted
    to a single event queue and applied by one actor task, so state transitions
    never run concurrently.
    """

    def __init__(
        self,
        live_config: LiveConfig,
        *,
        capture: CapturePipeline,
        scheduler: PlaybackScheduler,
        transport_factory: Callable[[], LiveTransport],
        connect_timeout_s: float = 10.0,
        max_pending_frames: int = MAX_PENDING_FRAMES,
        max_malformed_chunks: int = MAX_MALFORMED_CHUNKS,
        on_state_change: Optional[Callable[[Session], None]] = None,
        on_text: Optional[Callable[[str], None]] = None,
    ):
        self._live_config = live_config
        self._capture = capture
        self._scheduler = scheduler
        self._transport_factory = transport_factory
        self._connect_timeout_s = connect_timeout_s
        self._max_pending_frames = max_pending_frames
        self._max_malformed_chunks = max_malformed_chunks
        self._on_state_change = on_state_change
        self._on_text = on_text

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue[SessionEvent]] = None
        self._actor: Optional[asyncio.Task] = None
        self._accepting = False
        self._session: Optional[Session] = None
        self._transport: Optional[LiveTransport] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._pending_frames = 0
        self._malformed_streak = 0

    @classmethod
    def from_config(cls, config: "LiveVoiceConfig", **kwargs) -> "SessionController":
        """Build a controller with real devices and transport from app config."""
        capture = CapturePipeline(
            audio_format=AudioFormat(sample_rate=config.input_sample_rate),
            block_size=config.block_size,
            device=config.input_device,
        )
        scheduler = PlaybackScheduler(
            sample_rate=config.output_sample_rate,
            device=config.output_device,
        )

        def transport_factory() -> LiveTransport:
            return LiveTransport(
                url=config.service_url,
                api_key=config.api_key,
                open_timeout_s=config.connect_timeout_s,
                send_queue_size=config.send_queue_size,
                overflow_policy=config.send_overflow_policy,
            )

        return cls(
            config.live_config(),
            capture=capture,
            scheduler=scheduler,
            transport_factory=transport_factory,
            connect_timeout_s=config.connect_timeout_s,
            **kwargs,
        )

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> Session:
        """
        Start a new session: acquire devices and begin connecting.

        Returns once the session is CONNECTING. The connection outcome is
        observed through on_state_change or wait_closed().

        Raises:
            DeviceUnavailable: if the microphone or speaker cannot be acquired.
                The session is FAILED and nothing stays acquired.
        """
        if self._actor is not None and not self._actor.done():
            raise RuntimeError("A session is already running")

        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._pending_frames = 0
        self._malformed_streak = 0
        self._transport = None
        session = Session()
        self._session = session
        self._accepting = True
        self._actor = asyncio.create_task(
            self._run(session), name=f"session-{session.session_id}"
        )
        logger.info("Starting session %s", session.session_id)

        await self._request(StartRequested(session.session_id))
        if session.state is SessionState.FAILED and session.error is not None:
            raise session.error
        return session

    async def stop(self) -> Optional[Session]:
        """Stop the current session and release everything. Idempotent."""
        session = self._session
        if session is None or self._actor is None:
            return session
        if not self._actor.done():
            await self._request(StopRequested(session.session_id))
            await asyncio.shield(self._actor)
        return session

    async def wait_closed(self) -> Session:
        """
        Wait until the current session is CLOSED or FAILED.

        Raises:
            ConnectionFailed / DeviceUnavailable: if the session FAILED.
        """
        if self._actor is None or self._session is None:
            raise RuntimeError("No session has been started")
        await asyncio.shield(self._actor)
        session = self._session
        if session.state is SessionState.FAILED and session.error is not None:
            raise session.error
        return session

    # ------------------------------------------------------------------
    # Event plumbing
    # ------------------------------------------------------------------

    def _post(self, event: SessionEvent) -> None:
        if not self._accepting or self._events is None:
            if event.done is not None and not event.done.done():
                event.done.set_result(None)
            return
        self._events.put_nowait(event)

    async def _request(self, event: SessionEvent) -> None:
        assert self._loop is not None
        event.done = self._loop.create_future()
        self._post(event)
        await event.done

    def _frame_handler(self, session_id: str) -> Callable[[bytes], None]:
        """Handler run on the capture thread; hops onto the event loop."""
        loop = self._loop
        assert loop is not None

        def on_frame(data: bytes) -> None:
            try:
                loop.call_soon_threadsafe(self._post_frame, session_id, data)
            except RuntimeError:
                logger.debug("Event loop closed, dropping capture frame")

        return on_frame

    def _post_frame(self, session_id: str, data: bytes) -> None:
        if not self._accepting:
            return
        if self._pending_frames >= self._max_pending_frames:
            logger.warning("Event queue backed up, dropping capture frame")
            return
        self._pending_frames += 1
        self._post(CaptureFrame(session_id, data=data))

    def _callbacks_for(self, session_id: str) -> TransportCallbacks:
        return TransportCallbacks(
            on_open=lambda: self._post(TransportOpened(session_id)),
            on_message=lambda message: self._post(TransportMessage(session_id, message=message)),
            on_error=lambda error: self._post(TransportError(session_id, error=error)),
            on_close=lambda: self._post(TransportClosed(session_id)),
        )

    async def _run(self, session: Session) -> None:
        assert self._events is not None
        try:
            while not session.state.is_terminal:
                event = await self._events.get()
                if isinstance(event, CaptureFrame):
                    self._pending_frames -= 1
                try:
                    if event.session_id == session.session_id:
                        await self._handle(session, event)
                except Exception as e:
                    logger.exception("Session %s: error handling %s", session.session_id, type(event).__name__)
                    if session.state in _LIVE_STATES:
                        await self._teardown(session)
                        self._fail(session, e, str(e) or type(e).__name__)
                finally:
                    if event.done is not None and not event.done.done():
                        event.done.set_result(None)
        finally:
            self._accepting = False
            self._drain()
            logger.info("Session %s ended: %s", session.session_id, session.state.value)

    def _drain(self) -> None:
        assert self._events is not None
        while not self._events.empty():
            event = self._events.get_nowait()
            if event.done is not None and not event.done.done():
                event.done.set_result(None)

    async def _handle(self, session: Session, event: SessionEvent) -> None:
        if isinstance(event, CaptureFrame):
            self._forward_frame(session, event.data)
        elif isinstance(event, TransportMessage):
            await self._on_message(session, event.message)
        elif isinstance(event, StartRequested):
            await self._on_start(session)
        elif isinstance(event, TransportOpened):
            await self._on_open(session)
        elif isinstance(event, StopRequested):
            await self._close(session, status.STATUS_FINISHED)
        elif isinstance(event, TransportClosed):
            await self._close(session, status.STATUS_DISCONNECTED)
        elif isinstance(event, TransportError):
            if session.state in _LIVE_STATES:
                error = event.error
                if not isinstance(error, ConnectionFailed):
                    error = ConnectionFailed(str(error))
                await self._teardown(session)
                self._fail(session, error, status.STATUS_CONNECTION_ERROR)
        elif isinstance(event, ConnectTimedOut):
            if session.state is SessionState.CONNECTING:
                await self._teardown(session)
                self._fail(
                    session,
                    ConnectionFailed(f"Connection did not open within {self._connect_timeout_s}s"),
                    status.STATUS_CONNECTION_ERROR,
                )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _on_start(self, session: Session) -> None:
        self._transition(session, SessionState.CONNECTING, status.STATUS_CONNECTING)
        try:
            self._capture.acquire()
            self._scheduler.start()
        except DeviceUnavailable as e:
            logger.error("Session %s: %s", session.session_id, e)
            await self._teardown(session)
            self._fail(session, e, status.STATUS_DEVICE_ERROR)
            return

        self._transport = self._transport_factory()
        self._transport.connect(self._live_config, self._callbacks_for(session.session_id))
        assert self._loop is not None
        self._timeout_handle = self._loop.call_later(
            self._connect_timeout_s, self._post, ConnectTimedOut(session.session_id)
        )

    async def _on_open(self, session: Session) -> None:
        if session.state is not SessionState.CONNECTING:
            return
        self._cancel_timeout()
        try:
            self._capture.start(self._frame_handler(session.session_id))
        except DeviceUnavailable as e:
            logger.error("Session %s: %s", session.session_id, e)
            await self._teardown(session)
            self._fail(session, e, status.STATUS_DEVICE_ERROR)
            return
        self._transition(session, SessionState.ACTIVE, status.STATUS_ONLINE)

    async def _close(self, session: Session, final_status: str) -> None:
        if session.state not in _LIVE_STATES:
            return
        self._transition(session, SessionState.CLOSING, status.STATUS_HANGING_UP)
        await self._teardown(session)
        self._transition(session, SessionState.CLOSED, final_status)

    def _forward_frame(self, session: Session, data: bytes) -> None:
        if session.state is not SessionState.ACTIVE or self._transport is None:
            return
        session.frames_captured += 1
        self._transport.send(data)

    async def _on_message(self, session: Session, message: object) -> None:
        """
        Route one inbound message. A malformed audio chunk is dropped and the
        session continues; max_malformed_chunks of them in a row fail it.
        """
        if session.state is not SessionState.ACTIVE:
            logger.debug("Ignoring %s while %s", type(message).__name__, session.state.value)
            return
        if isinstance(message, AudioChunk):
            session.chunks_received += 1
            try:
                self._scheduler.schedule(codec.decode_chunk(message))
            except (MalformedAudioData, ValueError) as e:
                session.chunks_dropped += 1
                self._malformed_streak += 1
                logger.warning("Dropping audio chunk: %s", e)
                if self._malformed_streak >= self._max_malformed_chunks:
                    await self._teardown(session)
                    self._fail(
                        session,
                        MalformedAudioData(f"{self._malformed_streak} malformed audio chunks in a row"),
                        status.STATUS_AUDIO_ERROR,
                    )
                return
            self._malformed_streak = 0
        elif isinstance(message, InterruptionSignal):
            session.interruptions += 1
            self._scheduler.interrupt()
        elif isinstance(message, TextChunk):
            if self._on_text:
                try:
                    self._on_text(message.text)
                except Exception:
                    logger.exception("on_text callback failed")
        elif isinstance(message, TurnComplete):
            logger.debug("Session %s: turn complete", session.session_id)
        elif isinstance(message, GoAway):
            logger.warning("Server will close the connection soon (time left: %s)", message.time_left)
        else:
            logger.debug("Ignoring %s", type(message).__name__)

    async def _teardown(self, session: Session) -> None:
        """Stop capture, then playback, then the transport. Never raises."""
        self._cancel_timeout()
        for name, release in (("capture", self._capture.stop), ("playback", self._scheduler.stop)):
            try:
                release()
            except Exception:
                logger.exception("Session %s: failed to stop %s", session.session_id, name)
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close()
            except Exception:
                logger.exception("Session %s: failed to close transport", session.session_id)
            session.frames_sent = transport.frames_sent

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _fail(self, session: Session, error: BaseException, status_text: str) -> None:
        session.error = error
        self._transition(session, SessionState.FAILED, status_text)

    def _transition(self, session: Session, new_state: SessionState, status_text: str) -> None:
        old_state = session.state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise RuntimeError(f"Invalid transition {old_state.value} -> {new_state.value}")
        session.state = new_state
        session.status = status_text
        logger.info(
            "Session %s: %s -> %s (%s)",
            session.session_id,
            old_state.value,
            new_state.value,
            status_text,
        )
        if self._on_state_change:
            try:
                self._on_state_change(session)
            except Exception:
                logger.exception("on_state_change callback failed")

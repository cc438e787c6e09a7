"""Session states and the events consumed by the session controller."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SessionState(str, Enum):
    """Lifecycle states of one voice session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.FAILED)


ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CONNECTING}),
    SessionState.CONNECTING: frozenset(
        {SessionState.ACTIVE, SessionState.CLOSING, SessionState.FAILED}
    ),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING, SessionState.FAILED}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED: frozenset(),
}


@dataclass
class SessionEvent:
    """Base for everything posted to the controller's event queue."""
    session_id: str
    done: Optional[asyncio.Future] = field(default=None, repr=False, compare=False)


@dataclass
class StartRequested(SessionEvent):
    pass


@dataclass
class StopRequested(SessionEvent):
    pass


@dataclass
class TransportOpened(SessionEvent):
    pass


@dataclass
class TransportMessage(SessionEvent):
    message: Any = None


@dataclass
class TransportError(SessionEvent):
    error: Optional[BaseException] = None


@dataclass
class TransportClosed(SessionEvent):
    pass


@dataclass
class ConnectTimedOut(SessionEvent):
    pass


@dataclass
class CaptureFrame(SessionEvent):
    """One PCM16 block from the microphone, in capture order."""
    data: bytes = b""

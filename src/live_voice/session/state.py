"""Per-session record owned by the session controller."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from ..core.events import SessionState

STATUS_READY = "Ready to talk"
STATUS_CONNECTING = "Connecting..."
STATUS_ONLINE = "Online! Talk to me."
STATUS_HANGING_UP = "Hanging up..."
STATUS_FINISHED = "Finished"
STATUS_DISCONNECTED = "Disconnected"
STATUS_CONNECTION_ERROR = "Connection error"
STATUS_AUDIO_ERROR = "Audio stream error"
STATUS_DEVICE_ERROR = "Failed to start (microphone required)"


@dataclass
class Session:
    """One end-to-end voice exchange, from start() to its terminal state."""
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: SessionState = SessionState.IDLE
    status: str = STATUS_READY
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    frames_captured: int = 0
    frames_sent: int = 0
    chunks_received: int = 0
    chunks_dropped: int = 0
    interruptions: int = 0

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

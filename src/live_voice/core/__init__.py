"""Core module."""

from .errors import (
    ConnectionFailed,
    DeviceUnavailable,
    LiveVoiceError,
    MalformedAudioData,
    UnknownMessage,
)
from .events import SessionState

__all__ = [
    "ConnectionFailed",
    "DeviceUnavailable",
    "LiveVoiceError",
    "MalformedAudioData",
    "UnknownMessage",
    "SessionState",
]

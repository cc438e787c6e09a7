"""Live API client: wire protocol and WebSocket transport."""

from .protocol import (
    GoAway,
    InterruptionSignal,
    LiveConfig,
    ResponseModality,
    SetupComplete,
    TextChunk,
    TurnComplete,
    parse_server_message,
)
from .transport import DEFAULT_SERVICE_URL, LiveTransport, TransportCallbacks

__all__ = [
    "DEFAULT_SERVICE_URL",
    "GoAway",
    "InterruptionSignal",
    "LiveConfig",
    "LiveTransport",
    "ResponseModality",
    "SetupComplete",
    "TextChunk",
    "TransportCallbacks",
    "TurnComplete",
    "parse_server_message",
]

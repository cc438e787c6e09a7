"""Audio input data types and configuration."""

from __future__ import annotations

from dataclasses import dataclass

# Samples per capture block; one block becomes one outbound frame.
DEFAULT_BLOCK_SIZE = 4096


@dataclass(frozen=True)
class AudioFormat:
    """Audio format specification."""
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "float32"  # sounddevice dtype name


@dataclass
class CaptureSubscription:
    """Live binding between the microphone stream and the frame handler."""
    block_size: int
    sample_rate: int
    frames_delivered: int = 0
    active: bool = True

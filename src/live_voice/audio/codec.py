"""PCM16 conversion: float32 device samples <-> little-endian int16 wire bytes."""

from __future__ import annotations

import numpy as np

from ..core.errors import MalformedAudioData
from .types import AudioChunk, AudioFrame

PCM16_SCALE = 32768.0
SAMPLE_WIDTH = 2

_INT16_MIN = -32768
_INT16_MAX = 32767


def encode(samples: np.ndarray) -> bytes:
    """
    Convert float samples in [-1.0, 1.0] to PCM16 LE bytes.

    Each sample is multiplied by 32768 and truncated toward zero. Results outside
    the int16 range are clamped, so 1.0 becomes 32767 rather than wrapping.
    Multi-channel input of shape (n_frames, channels) is interleaved.
    """
    scaled = np.trunc(np.asarray(samples, dtype=np.float64) * PCM16_SCALE)
    clipped = np.clip(scaled, _INT16_MIN, _INT16_MAX)
    return clipped.astype("<i2").tobytes()


def decode(data: bytes, sample_rate: int, channels: int = 1) -> AudioFrame:
    """
    Convert PCM16 LE bytes to a playable AudioFrame.

    Raises:
        MalformedAudioData: if the payload is empty or not a whole number of
            sample frames.
    """
    frame_width = SAMPLE_WIDTH * channels
    if len(data) == 0:
        raise MalformedAudioData("empty PCM16 payload")
    if len(data) % frame_width != 0:
        raise MalformedAudioData(
            f"PCM16 payload of {len(data)} bytes is not a multiple of {frame_width}"
        )
    pcm = np.frombuffer(data, dtype="<i2")
    samples = (pcm.astype(np.float32) / PCM16_SCALE).reshape(-1, channels)
    return AudioFrame(samples=samples, sample_rate=sample_rate, channels=channels)


def encode_frame(frame: AudioFrame) -> AudioChunk:
    """Encode an AudioFrame into its wire form."""
    return AudioChunk(
        data=encode(frame.samples),
        sample_rate=frame.sample_rate,
        channels=frame.channels,
    )


def decode_chunk(chunk: AudioChunk) -> AudioFrame:
    """Decode a wire chunk using the rate and channel count it carries."""
    return decode(chunk.data, chunk.sample_rate, chunk.channels)

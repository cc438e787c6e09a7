"""Audio data types shared by capture, playback and the codec."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioFrame:
    """
    Immutable block of float32 samples in [-1.0, 1.0].

    `samples` has shape (n_frames, channels) and is made read-only on construction.
    """
    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"channels must be positive, got {self.channels}")
        samples = np.array(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(-1, self.channels)
        if samples.ndim != 2 or samples.shape[1] != self.channels:
            raise ValueError(
                f"samples shape {samples.shape} does not match {self.channels} channel(s)"
            )
        if samples.shape[0] == 0:
            raise ValueError("AudioFrame must contain at least one sample")
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    @property
    def frames(self) -> int:
        """Number of sample frames (samples per channel)."""
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return self.frames / self.sample_rate


@dataclass(frozen=True)
class AudioChunk:
    """One chunk of PCM16 little-endian audio, as carried on the wire."""

    data: bytes
    sample_rate: int
    channels: int = 1

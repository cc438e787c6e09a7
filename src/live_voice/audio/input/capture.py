"""Microphone capture: sounddevice input stream -> PCM16 frames."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Union

import numpy as np
import sounddevice as sd

from ...core.errors import DeviceUnavailable
from .. import codec
from .types import DEFAULT_BLOCK_SIZE, AudioFormat, CaptureSubscription

logger = logging.getLogger("Capture")

FrameHandler = Callable[[bytes], None]


class CapturePipeline:
    """
    Owns the microphone input stream and hands each captured block, encoded as
    PCM16, to a frame handler.

    Blocks are delivered on the PortAudio callback thread in capture order.
    Keep the handler lightweight; it should only hand the frame off.
    """

    def __init__(
        self,
        audio_format: AudioFormat = AudioFormat(),
        block_size: int = DEFAULT_BLOCK_SIZE,
        device: Optional[Union[int, str]] = None,
    ):
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")
        self._audio_format = audio_format
        self._block_size = block_size
        self._device = device
        self._lock = threading.Lock()
        self._stream: Optional[sd.InputStream] = None
        self._on_frame: Optional[FrameHandler] = None
        self._subscription: Optional[CaptureSubscription] = None

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def is_acquired(self) -> bool:
        return self._stream is not None

    @property
    def subscription(self) -> Optional[CaptureSubscription]:
        return self._subscription

    def acquire(self) -> None:
        """Open the input device without delivering frames yet. Idempotent."""
        with self._lock:
            if self._stream is not None:
                return
            try:
                self._stream = sd.InputStream(
                    callback=self._audio_callback,
                    samplerate=self._audio_format.sample_rate,
                    channels=self._audio_format.channels,
                    blocksize=self._block_size,
                    dtype=self._audio_format.dtype,
                    device=self._device,
                )
            except (sd.PortAudioError, ValueError) as e:
                raise DeviceUnavailable(f"Microphone unavailable: {e}") from e
        logger.info(
            "Microphone acquired (device=%s, sr=%s, blocksize=%s)",
            self._device,
            self._audio_format.sample_rate,
            self._block_size,
        )

    def start(self, on_frame: FrameHandler) -> CaptureSubscription:
        """
        Begin delivering PCM16 frames to `on_frame`.

        Acquires the device first if needed. On failure the device is released
        and DeviceUnavailable is raised.
        """
        self.acquire()
        with self._lock:
            if self._subscription is not None and self._subscription.active:
                raise RuntimeError("Capture is already running")
            subscription = CaptureSubscription(
                block_size=self._block_size,
                sample_rate=self._audio_format.sample_rate,
            )
            self._subscription = subscription
            self._on_frame = on_frame
            stream = self._stream

        try:
            stream.start()
        except sd.PortAudioError as e:
            self.stop()
            raise DeviceUnavailable(f"Microphone failed to start: {e}") from e
        logger.info("Microphone capture started")
        return subscription

    def stop(self) -> None:
        """Deregister the frame handler and release the device. Idempotent."""
        with self._lock:
            stream, self._stream = self._stream, None
            self._on_frame = None
            if self._subscription is not None:
                self._subscription.active = False
        if stream is None:
            return
        # Outside the lock: stopping waits for an in-flight callback to return.
        try:
            if stream.active:
                stream.stop()
            stream.close()
        except Exception as e:
            logger.warning("Error closing microphone stream: %s", e)
        logger.info("Microphone capture stopped")

    def _audio_callback(self, indata, frames, time_info, status) -> None:
        """Callback function for sounddevice input stream."""
        if status:
            logger.warning("Audio callback status: %s", status)

        with self._lock:
            on_frame = self._on_frame
            subscription = self._subscription
        if on_frame is None or subscription is None:
            return

        # indata shape is (frames, channels); the wire format is mono
        if indata.ndim == 2 and indata.shape[1] > 0:
            pcm = indata[:, 0].astype(np.float32)
        else:
            pcm = indata.flatten().astype(np.float32)

        subscription.frames_delivered += 1
        try:
            on_frame(codec.encode(pcm))
        except Exception:
            logger.exception("Frame handler failed; dropping block %d", subscription.frames_delivered)

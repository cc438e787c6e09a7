"""Playback scheduler: decoded frames -> sounddevice output (callback mode)."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Optional, Union

import numpy as np
import sounddevice as sd

from ...core.errors import DeviceUnavailable
from ..types import AudioFrame
from .types import PlaybackHandle

logger = logging.getLogger("Playback")

# Callback block size: ~10 ms at 24 kHz. Bounds how long an interrupt takes to
# reach the device.
PLAYBACK_BLOCKSIZE = 256


class PlaybackScheduler:
    """
    Plays decoded frames back-to-back on a virtual timeline.

    The device clock is the number of sample frames rendered by the output
    callback. `schedule()` places each frame at max(next_playback_time, clock),
    so frames that arrive faster than real time abut exactly and late frames
    leave a gap but never overlap.

    All timeline state is guarded by one lock, shared with the device callback.
    """

    def __init__(
        self,
        sample_rate: int = 24000,
        channels: int = 1,
        device: Optional[Union[int, str]] = None,
        blocksize: int = PLAYBACK_BLOCKSIZE,
    ):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self._sample_rate = sample_rate
        self._channels = channels
        self._device = device
        self._blocksize = blocksize

        self._lock = threading.Lock()
        self._stream: Optional[sd.OutputStream] = None
        self._clock_frame = 0
        self._next_frame = 0
        self._scheduled: dict[int, tuple[PlaybackHandle, np.ndarray]] = {}
        self._ids = itertools.count(1)

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def is_acquired(self) -> bool:
        return self._stream is not None

    @property
    def clock(self) -> float:
        """Device clock in seconds."""
        with self._lock:
            return self._clock_frame / self._sample_rate

    @property
    def next_playback_time(self) -> float:
        with self._lock:
            return self._next_frame / self._sample_rate

    @property
    def scheduled(self) -> list[PlaybackHandle]:
        """Handles that are scheduled or playing, in start order."""
        with self._lock:
            return [handle for handle, _ in self._scheduled.values()]

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return bool(self._scheduled)

    def start(self) -> None:
        """Open and start the output device. Plays silence until frames are scheduled."""
        with self._lock:
            if self._stream is not None:
                return
            try:
                stream = sd.OutputStream(
                    samplerate=self._sample_rate,
                    channels=self._channels,
                    dtype="float32",
                    blocksize=self._blocksize,
                    callback=self._callback,
                    device=self._device,
                    latency="low",
                )
            except (sd.PortAudioError, ValueError) as e:
                raise DeviceUnavailable(f"Speaker unavailable: {e}") from e
            self._stream = stream

        try:
            stream.start()
        except sd.PortAudioError as e:
            self.stop()
            raise DeviceUnavailable(f"Speaker failed to start: {e}") from e
        logger.info(
            "Speaker started (device=%s, sr=%s, blocksize=%s)",
            self._device,
            self._sample_rate,
            self._blocksize,
        )

    def schedule(self, frame: AudioFrame) -> PlaybackHandle:
        """Queue `frame` to start right after everything already scheduled."""
        if frame.sample_rate != self._sample_rate or frame.channels != self._channels:
            raise ValueError(
                f"Frame format {frame.sample_rate} Hz/{frame.channels} ch does not match "
                f"output {self._sample_rate} Hz/{self._channels} ch"
            )
        with self._lock:
            start_frame = max(self._next_frame, self._clock_frame)
            handle = PlaybackHandle(
                handle_id=next(self._ids),
                start_frame=start_frame,
                frames=frame.frames,
                sample_rate=self._sample_rate,
            )
            self._scheduled[handle.handle_id] = (handle, frame.samples)
            self._next_frame = handle.end_frame
        logger.debug(
            "Scheduled buffer #%d at %.3fs (%.3fs)",
            handle.handle_id,
            handle.start_time,
            handle.duration,
        )
        return handle

    def cancel(self, handle: PlaybackHandle) -> bool:
        """Stop a single buffer. Returns False if it already ended or was stopped."""
        with self._lock:
            entry = self._scheduled.pop(handle.handle_id, None)
            if entry is None:
                return False
            entry[0].stopped = True
        return True

    def interrupt(self) -> int:
        """
        Stop every scheduled and playing buffer and restart the timeline at the
        device clock. Returns the number of buffers cancelled.
        """
        with self._lock:
            handles = [handle for handle, _ in self._scheduled.values()]
            for handle in handles:
                handle.stopped = True
            self._scheduled.clear()
            self._next_frame = self._clock_frame
        if handles:
            logger.info("Playback interrupted, cancelled %d buffer(s)", len(handles))
        return len(handles)

    def render(self, frames: int) -> np.ndarray:
        """
        Produce the next `frames` sample frames and advance the device clock.

        Buffers that finish inside the window are marked ended and dropped.
        """
        out = np.zeros((frames, self._channels), dtype=np.float32)
        with self._lock:
            window_start = self._clock_frame
            window_end = window_start + frames
            finished: list[int] = []
            for handle_id, (handle, samples) in self._scheduled.items():
                if handle.start_frame >= window_end:
                    break
                lo = max(handle.start_frame, window_start)
                hi = min(handle.end_frame, window_end)
                if hi > lo:
                    out[lo - window_start : hi - window_start] += samples[
                        lo - handle.start_frame : hi - handle.start_frame
                    ]
                if handle.end_frame <= window_end:
                    finished.append(handle_id)
            for handle_id in finished:
                handle, _ = self._scheduled.pop(handle_id)
                handle.ended = True
            self._clock_frame = window_end
        return out

    def stop(self) -> None:
        """Cancel all playback and release the output device. Idempotent."""
        self.interrupt()
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            if stream.active:
                stream.stop()
            stream.close()
        except Exception as e:
            logger.warning("Error closing playback stream: %s", e)
        logger.info("Speaker stopped")

    def _callback(
        self, outdata: np.ndarray, frames: int, time_info: object, status: sd.CallbackFlags
    ) -> None:
        if status:
            logger.warning("Playback callback status=%s", status)
        outdata[:] = self.render(frames)

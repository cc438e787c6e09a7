"""Audio output data types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PlaybackHandle:
    """
    Reference to one buffer scheduled on the playback timeline.

    Positions are in sample frames at the scheduler's rate; the *_time
    properties give the same positions in seconds.
    """

    handle_id: int
    start_frame: int
    frames: int
    sample_rate: int
    stopped: bool = False
    ended: bool = False

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.frames

    @property
    def start_time(self) -> float:
        return self.start_frame / self.sample_rate

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    @property
    def end_time(self) -> float:
        return self.end_frame / self.sample_rate

    @property
    def is_pending(self) -> bool:
        return not (self.stopped or self.ended)

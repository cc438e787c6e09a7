"""Audio output module."""

from .scheduler import PLAYBACK_BLOCKSIZE, PlaybackScheduler
from .types import PlaybackHandle

__all__ = ["PlaybackScheduler", "PlaybackHandle", "PLAYBACK_BLOCKSIZE"]

"""Audio input module."""

from .capture import CapturePipeline
from .types import DEFAULT_BLOCK_SIZE, AudioFormat, CaptureSubscription

__all__ = ["CapturePipeline", "CaptureSubscription", "AudioFormat", "DEFAULT_BLOCK_SIZE"]

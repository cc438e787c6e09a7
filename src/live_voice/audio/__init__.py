"""
Audio subsystem.

Exports:
- AudioFrame / AudioChunk: float and PCM16 forms of audio
- encode / decode: PCM16 codec
- CapturePipeline: microphone -> PCM16 frames
- PlaybackScheduler: decoded frames -> speaker, gapless and interruptible
"""

from .codec import decode, decode_chunk, encode, encode_frame
from .input import AudioFormat, CapturePipeline, CaptureSubscription
from .output import PlaybackHandle, PlaybackScheduler
from .types import AudioChunk, AudioFrame

__all__ = [
    "AudioChunk",
    "AudioFormat",
    "AudioFrame",
    "CapturePipeline",
    "CaptureSubscription",
    "PlaybackHandle",
    "PlaybackScheduler",
    "decode",
    "decode_chunk",
    "encode",
    "encode_frame",
]

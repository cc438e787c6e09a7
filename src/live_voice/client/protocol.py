"""Live API message schemas for client/server communication."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..audio.types import AudioChunk
from ..core.errors import UnknownMessage

logger = logging.getLogger("LiveProtocol")

DEFAULT_MODEL = "models/gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_VOICE = "Puck"
DEFAULT_SYSTEM_PROMPT = (
    "You are an enthusiastic study buddy. You speak Spanish. You help the child "
    "practice pronunciation and answer curious questions briefly."
)
INPUT_MIME_TEMPLATE = "audio/pcm;rate={rate}"
DEFAULT_OUTPUT_SAMPLE_RATE = 24000

_RATE_RE = re.compile(r"rate=(\d+)")


class ResponseModality(str, Enum):
    """What the service should answer with."""
    AUDIO = "audio"
    AUDIO_TEXT = "audio_text"

    def to_wire(self) -> List[str]:
        if self is ResponseModality.AUDIO_TEXT:
            return ["AUDIO", "TEXT"]
        return ["AUDIO"]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )


# --------------------------------------------------------------------------
# Connection config
# --------------------------------------------------------------------------

class LiveConfig(BaseModel):
    """Options sent once when the connection is set up."""
    model: str = DEFAULT_MODEL
    voice_name: str = DEFAULT_VOICE
    response_modality: ResponseModality = ResponseModality.AUDIO
    system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT
    input_sample_rate: int = Field(default=16000, gt=0)


# --------------------------------------------------------------------------
# Outbound envelopes
# --------------------------------------------------------------------------

class Part(_WireModel):
    text: Optional[str] = None


class Content(_WireModel):
    parts: List[Part]


class PrebuiltVoiceConfig(_WireModel):
    voice_name: str


class VoiceConfig(_WireModel):
    prebuilt_voice_config: PrebuiltVoiceConfig


class SpeechConfig(_WireModel):
    voice_config: VoiceConfig


class GenerationConfig(_WireModel):
    response_modalities: List[str]
    speech_config: SpeechConfig


class Setup(_WireModel):
    model: str
    generation_config: GenerationConfig
    system_instruction: Optional[Content] = None


class SetupMessage(_WireModel):
    setup: Setup

    @classmethod
    def from_config(cls, config: LiveConfig) -> "SetupMessage":
        instruction = None
        if config.system_prompt:
            instruction = Content(parts=[Part(text=config.system_prompt)])
        return cls(
            setup=Setup(
                model=config.model,
                generation_config=GenerationConfig(
                    response_modalities=config.response_modality.to_wire(),
                    speech_config=SpeechConfig(
                        voice_config=VoiceConfig(
                            prebuilt_voice_config=PrebuiltVoiceConfig(
                                voice_name=config.voice_name
                            )
                        )
                    ),
                ),
                system_instruction=instruction,
            )
        )


class MediaChunk(_WireModel):
    mime_type: str
    data: str


class RealtimeInput(_WireModel):
    media_chunks: List[MediaChunk]


class RealtimeInputMessage(_WireModel):
    realtime_input: RealtimeInput

    @classmethod
    def from_pcm(cls, pcm: bytes, sample_rate: int) -> "RealtimeInputMessage":
        return cls(
            realtime_input=RealtimeInput(
                media_chunks=[
                    MediaChunk(
                        mime_type=INPUT_MIME_TEMPLATE.format(rate=sample_rate),
                        data=base64.b64encode(pcm).decode("ascii"),
                    )
                ]
            )
        )


def dump(message: _WireModel) -> str:
    """Serialize an outbound envelope the way the service expects it."""
    return message.model_dump_json(by_alias=True, exclude_none=True)


# --------------------------------------------------------------------------
# Inbound messages
# --------------------------------------------------------------------------

@dataclass(frozen=True)
class SetupComplete:
    pass


@dataclass(frozen=True)
class InterruptionSignal:
    """The user spoke over the assistant: drop all pending assistant audio."""


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class TurnComplete:
    pass


@dataclass(frozen=True)
class GoAway:
    time_left: Optional[str] = None


InboundMessage = Union[SetupComplete, AudioChunk, InterruptionSignal, TextChunk, TurnComplete, GoAway]


class InlineData(_WireModel):
    mime_type: str = ""
    data: str = ""


class ServerPart(_WireModel):
    text: Optional[str] = None
    inline_data: Optional[InlineData] = None


class ModelTurn(_WireModel):
    parts: List[ServerPart] = Field(default_factory=list)


class ServerContent(_WireModel):
    model_turn: Optional[ModelTurn] = None
    interrupted: bool = False
    turn_complete: bool = False


class GoAwayBody(_WireModel):
    time_left: Optional[str] = None


class ServerMessage(_WireModel):
    setup_complete: Optional[dict] = None
    server_content: Optional[ServerContent] = None
    go_away: Optional[GoAwayBody] = None


def sample_rate_from_mime(mime_type: str, default: int = DEFAULT_OUTPUT_SAMPLE_RATE) -> int:
    """Extract the rate from e.g. 'audio/pcm;rate=24000'."""
    match = _RATE_RE.search(mime_type or "")
    return int(match.group(1)) if match else default


def parse_server_message(raw: Union[str, bytes]) -> List[InboundMessage]:
    """
    Turn one server envelope into typed messages, in the order they apply.

    Audio parts come before an interruption flag carried in the same envelope.
    An audio part that is not valid base64 is dropped on its own.

    Raises:
        UnknownMessage: if the envelope is not JSON or has no recognized field.
    """
    try:
        payload: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UnknownMessage(f"Inbound message is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise UnknownMessage(f"Inbound message is not an object: {type(payload).__name__}")

    try:
        msg = ServerMessage.model_validate(payload)
    except ValidationError as e:
        raise UnknownMessage(f"Inbound message has unexpected shape: {e}") from e

    messages: List[InboundMessage] = []
    if msg.setup_complete is not None:
        messages.append(SetupComplete())

    content = msg.server_content
    if content is not None:
        parts = content.model_turn.parts if content.model_turn else []
        for part in parts:
            if part.inline_data is not None and part.inline_data.data:
                try:
                    data = base64.b64decode(part.inline_data.data, validate=True)
                except binascii.Error as e:
                    # Only this part is lost; flags in the envelope still apply
                    logger.warning("Dropping audio part that is not valid base64: %s", e)
                else:
                    messages.append(
                        AudioChunk(
                            data=data,
                            sample_rate=sample_rate_from_mime(part.inline_data.mime_type),
                        )
                    )
            if part.text:
                messages.append(TextChunk(text=part.text))
        if content.interrupted:
            messages.append(InterruptionSignal())
        if content.turn_complete:
            messages.append(TurnComplete())

    if msg.go_away is not None:
        messages.append(GoAway(time_left=msg.go_away.time_left))

    if not messages and content is None:
        raise UnknownMessage(f"Unrecognized message keys: {sorted(payload)}")
    return messages

import os
from pathlib import Path
from typing import Optional, Union
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv
import logging

from ..client.protocol import (
    DEFAULT_MODEL,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_VOICE,
    LiveConfig,
    ResponseModality,
)
from ..client.transport import DEFAULT_SERVICE_URL, OVERFLOW_POLICIES

logger = logging.getLogger(__name__)


class LiveVoiceConfig(BaseModel):
    api_key: str = Field(..., min_length=1, description="Gemini API key for the Live API")
    model: str = Field(default=DEFAULT_MODEL, description="Live API model to use")
    voice_name: str = Field(default=DEFAULT_VOICE, description="Prebuilt voice the assistant speaks with")
    response_modality: ResponseModality = Field(default=ResponseModality.AUDIO, description="audio or audio_text")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System instruction sent at setup")
    service_url: str = Field(default=DEFAULT_SERVICE_URL, description="Live API WebSocket endpoint")
    input_sample_rate: int = Field(default=16000, gt=0, description="Microphone capture rate (Hz)")
    output_sample_rate: int = Field(default=24000, gt=0, description="Speaker playback rate (Hz)")
    block_size: int = Field(default=4096, gt=0, description="Samples per capture block / outbound frame")
    connect_timeout_s: float = Field(default=10.0, gt=0, description="Seconds to wait for the connection to open")
    send_queue_size: int = Field(default=64, gt=0, description="Outbound frames buffered before dropping")
    send_overflow_policy: str = Field(default="drop_oldest", description="drop_oldest or drop_newest")
    input_device: Optional[Union[int, str]] = Field(default=None, description="sounddevice input device")
    output_device: Optional[Union[int, str]] = Field(default=None, description="sounddevice output device")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("send_overflow_policy")
    @classmethod
    def _check_overflow_policy(cls, value: str) -> str:
        if value not in OVERFLOW_POLICIES:
            raise ValueError(f"send_overflow_policy must be one of {OVERFLOW_POLICIES}")
        return value

    def live_config(self) -> LiveConfig:
        """Connection options sent to the service at setup."""
        return LiveConfig(
            model=self.model,
            voice_name=self.voice_name,
            response_modality=self.response_modality,
            system_prompt=self.system_prompt or None,
            input_sample_rate=self.input_sample_rate,
        )


def _device_from_env(name: str) -> Optional[Union[int, str]]:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    return int(value) if value.isdigit() else value


def load_config(config_path: Optional[Path] = None) -> LiveVoiceConfig:
    if config_path is None:
        config_path = Path(".env")

    if config_path.exists():
        load_dotenv(config_path)
        logger.info(f"Loaded environment variables from {config_path}")
    else:
        logger.warning(f"Config file {config_path} not found, using environment variables only")

    try:
        config = LiveVoiceConfig(
            api_key=os.getenv("GEMINI_API_KEY", ""),
            model=os.getenv("LIVE_MODEL", DEFAULT_MODEL),
            voice_name=os.getenv("LIVE_VOICE", DEFAULT_VOICE),
            response_modality=os.getenv("LIVE_RESPONSE_MODALITY", ResponseModality.AUDIO.value),
            system_prompt=os.getenv("LIVE_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            service_url=os.getenv("LIVE_SERVICE_URL", DEFAULT_SERVICE_URL),
            input_sample_rate=int(os.getenv("INPUT_SAMPLE_RATE", "16000")),
            output_sample_rate=int(os.getenv("OUTPUT_SAMPLE_RATE", "24000")),
            block_size=int(os.getenv("CAPTURE_BLOCK_SIZE", "4096")),
            connect_timeout_s=float(os.getenv("CONNECT_TIMEOUT_S", "10.0")),
            send_queue_size=int(os.getenv("SEND_QUEUE_SIZE", "64")),
            send_overflow_policy=os.getenv("SEND_OVERFLOW_POLICY", "drop_oldest"),
            input_device=_device_from_env("INPUT_DEVICE"),
            output_device=_device_from_env("OUTPUT_DEVICE"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

        if not config.api_key:
            raise ValueError("GEMINI_API_KEY is required but not set")

        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise


def create_example_env_file(path: Path = Path(".env.example")):
    example_content = f"""# Gemini API key - Get from https://aistudio.google.com/
GEMINI_API_KEY=your_api_key_here

# Live API model and voice
LIVE_MODEL={DEFAULT_MODEL}
LIVE_VOICE={DEFAULT_VOICE}

# Response modality: audio or audio_text
LIVE_RESPONSE_MODALITY=audio

# System instruction sent when the session is set up
LIVE_SYSTEM_PROMPT="{DEFAULT_SYSTEM_PROMPT}"

# Audio devices (index or name substring); empty means system default
INPUT_DEVICE=
OUTPUT_DEVICE=

# Capture block size in samples (one outbound frame per block)
CAPTURE_BLOCK_SIZE=4096

# Seconds to wait for the connection to open
CONNECT_TIMEOUT_S=10.0

# Outbound frame buffering: queue size and what to drop when full (drop_oldest/drop_newest)
SEND_QUEUE_SIZE=64
SEND_OVERFLOW_POLICY=drop_oldest

# Logging level
LOG_LEVEL=INFO
"""

    with open(path, "w") as f:
        f.write(example_content)

    logger.info(f"Created example environment file at {path}")


def setup_logging(log_level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

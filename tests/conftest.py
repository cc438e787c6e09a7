import pytest
import os
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

CAPTURE_MODULE = "live_voice.audio.input.capture"
SCHEDULER_MODULE = "live_voice.audio.output.scheduler"


@pytest.fixture
def setup_test_env():
    """Setup test environment variables"""
    original_env = os.environ.copy()

    os.environ["GEMINI_API_KEY"] = "test_key_12345"
    os.environ["LIVE_VOICE"] = "Puck"

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_audio_data():
    """Mock audio data for testing"""
    import numpy as np
    return (np.random.rand(16000).astype(np.float32) * 2.0 - 1.0)  # 1 second at 16kHz


@pytest.fixture
def audio_devices():
    """Patch sounddevice streams; exposes the mic callback once a stream is opened."""
    state = SimpleNamespace(mic_callback=None, input_stream=None, output_stream=None)

    def make_input_stream(*args, **kwargs):
        state.mic_callback = kwargs["callback"]
        return MagicMock()

    with patch(f"{CAPTURE_MODULE}.sd.InputStream", side_effect=make_input_stream) as input_stream, \
            patch(f"{SCHEDULER_MODULE}.sd.OutputStream") as output_stream:
        state.input_stream = input_stream
        state.output_stream = output_stream
        yield state

import pytest
from unittest.mock import patch
from live_voice.client.protocol import DEFAULT_MODEL, ResponseModality
from live_voice.config.settings import LiveVoiceConfig, create_example_env_file, load_config
from pathlib import Path
import tempfile
import os


class TestConfig:
    def test_default_config(self):
        config = LiveVoiceConfig(api_key="test_key")
        assert config.model == DEFAULT_MODEL
        assert config.voice_name == "Puck"
        assert config.input_sample_rate == 16000
        assert config.output_sample_rate == 24000
        assert config.block_size == 4096
        assert config.send_overflow_policy == "drop_oldest"
        assert config.input_device is None

    def test_config_with_custom_values(self):
        config = LiveVoiceConfig(
            api_key="test_key",
            voice_name="Kore",
            response_modality="audio_text",
            input_device=3,
        )
        assert config.voice_name == "Kore"
        assert config.response_modality is ResponseModality.AUDIO_TEXT
        assert config.input_device == 3

    @patch.dict(os.environ, {
        "GEMINI_API_KEY": "test_key",
        "LIVE_VOICE": "Charon",
        "CAPTURE_BLOCK_SIZE": "2048",
        "SEND_OVERFLOW_POLICY": "drop_newest",
        "INPUT_DEVICE": "2",
        "OUTPUT_DEVICE": "USB Headset",
    }, clear=True)
    def test_load_config_from_env(self, tmp_path):
        config = load_config(tmp_path / "missing.env")
        assert config.api_key == "test_key"
        assert config.voice_name == "Charon"
        assert config.block_size == 2048
        assert config.send_overflow_policy == "drop_newest"
        assert config.input_device == 2
        assert config.output_device == "USB Headset"

    @patch.dict(os.environ, {}, clear=True)
    def test_load_config_without_api_key(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(tmp_path / "missing.env")

    def test_missing_api_key(self):
        with pytest.raises(ValueError):
            LiveVoiceConfig(api_key="")

    def test_invalid_overflow_policy(self):
        with pytest.raises(ValueError):
            LiveVoiceConfig(api_key="test_key", send_overflow_policy="block")

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError):
            LiveVoiceConfig(api_key="test_key", input_sample_rate=0)

    @patch.dict(os.environ, {}, clear=True)
    def test_config_from_temp_file(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.env', delete=False) as f:
            f.write("GEMINI_API_KEY=temp_key\n")
            f.write("LIVE_RESPONSE_MODALITY=audio_text\n")
            f.write("CONNECT_TIMEOUT_S=2.5\n")
            temp_path = f.name

        try:
            config = load_config(Path(temp_path))
            assert config.api_key == "temp_key"
            assert config.response_modality is ResponseModality.AUDIO_TEXT
            assert config.connect_timeout_s == 2.5
        finally:
            os.unlink(temp_path)

    def test_live_config_mapping(self):
        config = LiveVoiceConfig(api_key="test_key", voice_name="Kore", system_prompt="")
        live = config.live_config()
        assert live.voice_name == "Kore"
        assert live.model == config.model
        assert live.system_prompt is None
        assert live.input_sample_rate == 16000

    def test_create_example_env_file(self, tmp_path):
        path = tmp_path / ".env.example"
        create_example_env_file(path)
        content = path.read_text()
        assert "GEMINI_API_KEY=" in content
        assert "SEND_OVERFLOW_POLICY=drop_oldest" in content

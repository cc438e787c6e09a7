"""Configuration loading."""

from .settings import LiveVoiceConfig, create_example_env_file, load_config, setup_logging

__all__ = ["LiveVoiceConfig", "create_example_env_file", "load_config", "setup_logging"]

"""live-voice - talk to the Live API from the terminal."""

import argparse
import asyncio
import logging
from pathlib import Path

from live_voice.client.protocol import ResponseModality
from live_voice.config.settings import create_example_env_file, load_config, setup_logging
from live_voice.core.errors import LiveVoiceError
from live_voice.session import Session, SessionController

logger = logging.getLogger("LiveVoice")


def _print_status(session: Session) -> None:
    print(f"[{session.state.value}] {session.status}")


def _print_text(text: str) -> None:
    print(f"Assistant: {text}")


async def run_session(controller: SessionController) -> Session:
    """Run one session until it ends or the task is cancelled (Ctrl+C)."""
    try:
        await controller.start()
        return await controller.wait_closed()
    finally:
        await controller.stop()


def list_devices() -> None:
    import sounddevice as sd

    print(sd.query_devices())


def main():
    parser = argparse.ArgumentParser(description="Live voice conversation client")
    parser.add_argument("--config", type=str, help="Path to config file", default=".env")
    parser.add_argument("--create-config", action="store_true", help="Create example config file")
    parser.add_argument("--list-devices", action="store_true", help="List audio devices and exit")
    parser.add_argument("--voice", type=str, help="Override the assistant voice")
    parser.add_argument("--text", action="store_true", help="Also print the assistant's text")

    args = parser.parse_args()

    if args.create_config:
        create_example_env_file()
        print("Example configuration file created at .env.example")
        print("Please copy it to .env and fill in your API key.")
        return

    if args.list_devices:
        list_devices()
        return

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("Run with --create-config to create an example configuration file.")
        return

    updates = {}
    if args.voice:
        updates["voice_name"] = args.voice
    if args.text:
        updates["response_modality"] = ResponseModality.AUDIO_TEXT
    if updates:
        config = config.model_copy(update=updates)

    setup_logging(config.log_level)
    controller = SessionController.from_config(
        config,
        on_state_change=_print_status,
        on_text=_print_text,
    )

    try:
        asyncio.run(run_session(controller))
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except LiveVoiceError as e:
        print(f"Session failed: {e}")


if __name__ == "__main__":
    main()

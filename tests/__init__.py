"""
Live Voice Tests
================

This package contains unit tests for the live voice session components.

Test Structure:
- test_codec.py: PCM16 encode/decode
- test_capture.py: microphone capture pipeline
- test_scheduler.py: gapless, interruptible playback scheduling
- test_protocol.py: Live API envelopes
- test_transport.py: WebSocket transport lifecycle
- test_controller.py: session state machine and end-to-end scenarios
- test_config.py: configuration management
- test_main.py: command-line entry point
- conftest.py: shared fixtures

To run tests:
    pytest tests/"""

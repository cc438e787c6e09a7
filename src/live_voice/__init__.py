"""Live voice session client: mic -> Live API -> speaker."""

__version__ = "0.1.0"

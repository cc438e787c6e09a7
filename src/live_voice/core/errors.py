"""Exceptions raised by the live voice session components."""


class LiveVoiceError(Exception):
    """Base class for all live voice session errors."""


class DeviceUnavailable(LiveVoiceError):
    """Microphone or speaker could not be acquired. Fatal to the session."""


class ConnectionFailed(LiveVoiceError):
    """Connection to the voice service could not be opened, or dropped."""


class MalformedAudioData(LiveVoiceError):
    """PCM payload length is not a whole number of samples."""


class UnknownMessage(LiveVoiceError):
    """Inbound message has a shape we do not understand."""

"""Recognition error codes, user-facing messages and exceptions."""

from __future__ import annotations

NO_SPEECH = "no-speech"
ABORTED = "aborted"
AUDIO_CAPTURE = "audio-capture"
NETWORK = "network"
NOT_ALLOWED = "not-allowed"
SERVICE_NOT_ALLOWED = "service-not-allowed"
LANGUAGE_NOT_SUPPORTED = "language-not-supported"

ERROR_MESSAGES = {
    NOT_ALLOWED: "Microphone access was denied. Allow microphone access in system settings.",
    NO_SPEECH: "No speech was detected.",
    AUDIO_CAPTURE: "No microphone was found.",
    NETWORK: "A network error occurred during speech recognition.",
    ABORTED: "Speech recognition was aborted.",
    LANGUAGE_NOT_SUPPORTED: "This language is not supported.",
    SERVICE_NOT_ALLOWED: "The speech recognition service is not available.",
}

UNSUPPORTED_MESSAGE = "Speech recognition is not supported on this system."
MICROPHONE_CHECK_MESSAGE = "Please check your microphone connection."
NETWORK_GIVE_UP_MESSAGE = "Speech recognition stopped after repeated network errors."
START_FAILED_MESSAGE = "Speech recognition could not be started."


def error_message(code: str) -> str:
    return ERROR_MESSAGES.get(code, f"Speech recognition error: {code}")


class InvalidStateError(RuntimeError):
    """Raised by a recognition handle that is started twice."""


class AudioCaptureError(RuntimeError):
    """Raised when no audio input can be opened."""


class EmptyTranscriptError(ValueError):
    """Raised when a summary is requested for a meeting with no transcript."""

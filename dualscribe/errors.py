"""Exceptions and session error codes."""


class CaptureError(Exception):
    """Microphone capture could not be started."""


class EngineError(Exception):
    """Base class for engine failures."""


class ModelNotLoadedError(EngineError):
    """The batch model is not ready."""

    def __init__(self, message: str = "Batch model is not loaded"):
        super().__init__(message)


class EmptyAudioError(EngineError):
    """Transcription was requested for zero samples."""

    def __init__(self, message: str = "No audio samples to transcribe"):
        super().__init__(message)


# Session error codes surfaced on SessionStatus.error_code
CAPTURE_FAILED = "capture_failed"
NO_AUDIO_RECORDED = "no_audio_recorded"
NO_SPEECH_DETECTED = "no_speech_detected"

ERROR_MESSAGES = {
    CAPTURE_FAILED: "Failed to start recording",
    NO_AUDIO_RECORDED: "No audio recorded",
    NO_SPEECH_DETECTED: "No speech detected",
}


def error_message(code: str, detail: str = "") -> str:
    """User-facing message for an error code, with optional detail."""
    message = ERROR_MESSAGES.get(code, code)
    if detail:
        return f"{message}: {detail}"
    return message

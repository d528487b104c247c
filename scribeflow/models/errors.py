"""Error taxonomy shared by capture, persistence, transcription and summarization."""

from enum import Enum
from typing import Optional


class CaptureErrorKind(Enum):
    """Reasons a recording device could not be acquired or kept running."""
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    NOT_SUPPORTED = "not_supported"
    RECORDER_ERROR = "recorder_error"
    UNKNOWN = "unknown"


_CAPTURE_MESSAGES = {
    CaptureErrorKind.PERMISSION_DENIED: "Microphone access denied. Please allow microphone access to record audio.",
    CaptureErrorKind.DEVICE_NOT_FOUND: "No microphone found. Please connect a microphone and try again.",
    CaptureErrorKind.NOT_SUPPORTED: "Audio recording is not supported on this system.",
    CaptureErrorKind.RECORDER_ERROR: "Recording was aborted unexpectedly.",
    CaptureErrorKind.UNKNOWN: "An unknown error occurred while recording.",
}


class CaptureError(Exception):
    """Raised when the capture device fails."""

    def __init__(self, kind: CaptureErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or _CAPTURE_MESSAGES[kind]
        super().__init__(self.message)


class StorageErrorKind(Enum):
    """Reasons a recording could not be persisted or removed."""
    DIRECTORY_CREATION_FAILED = "directory_creation_failed"
    FILE_WRITE_FAILED = "file_write_failed"
    FILE_DELETE_FAILED = "file_delete_failed"
    UNSUPPORTED_ENVIRONMENT = "unsupported_environment"
    UNKNOWN = "unknown"


class StorageError(Exception):
    """Raised by the recording storage layer."""

    def __init__(self, kind: StorageErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)


class TranscriptionErrorKind(Enum):
    """Failure categories reported by the transcription backend."""
    API_KEY_NOT_CONFIGURED = "api_key_not_configured"
    INVALID_API_KEY = "invalid_api_key"
    FILE_NOT_FOUND = "file_not_found"
    FILE_READ_ERROR = "file_read_error"
    INVALID_AUDIO_FORMAT = "invalid_audio_format"
    NETWORK_ERROR = "network_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    API_ERROR = "api_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Only transient failures may be retried without re-recording."""
        return self in (TranscriptionErrorKind.NETWORK_ERROR, TranscriptionErrorKind.RATE_LIMIT_EXCEEDED)

    def user_message(self, detail: Optional[str] = None) -> str:
        """Human readable message for this failure kind."""
        if self is TranscriptionErrorKind.API_KEY_NOT_CONFIGURED:
            return "API key not configured. Please add your OpenAI API key to the configuration."
        if self is TranscriptionErrorKind.INVALID_API_KEY:
            return "Invalid API key. Please check your OpenAI API key."
        if self is TranscriptionErrorKind.FILE_NOT_FOUND:
            return f"Recording file not found: {detail}" if detail else "Recording file not found."
        if self is TranscriptionErrorKind.FILE_READ_ERROR:
            return "Failed to read recording file. Please try recording again."
        if self is TranscriptionErrorKind.INVALID_AUDIO_FORMAT:
            return "Invalid audio format. Please try recording again."
        if self is TranscriptionErrorKind.NETWORK_ERROR:
            return "Transcription failed - please try again. Check your internet connection."
        if self is TranscriptionErrorKind.RATE_LIMIT_EXCEEDED:
            return "Rate limit exceeded - please wait a moment and try again."
        if self is TranscriptionErrorKind.API_ERROR:
            return f"Transcription failed: {detail}" if detail else "Transcription failed."
        return f"An unexpected error occurred: {detail}" if detail else "An unexpected error occurred."


class SummarizationErrorKind(Enum):
    """Failure categories reported by the summarization backend."""
    API_KEY_NOT_CONFIGURED = "api_key_not_configured"
    INVALID_API_KEY = "invalid_api_key"
    NETWORK_ERROR = "network_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    API_ERROR = "api_error"
    EMPTY_TEXT = "empty_text"
    UNKNOWN = "unknown"


class SummarizationError(Exception):
    """Raised when a summary could not be generated."""

    def __init__(self, kind: SummarizationErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)


class HistoryError(Exception):
    """Raised when the history store cannot be read or written."""


class StateTransitionError(RuntimeError):
    """Raised when a session state mutation would break an invariant."""


class ExternalActionErrorKind(Enum):
    """Failure categories of a custom action call."""
    INVALID_URL = "invalid_url"
    NETWORK_ERROR = "network_error"
    SERVICE_ERROR = "service_error"


class ExternalActionError(Exception):
    """Raised when a transcription could not be sent to a custom action endpoint."""

    def __init__(self, kind: ExternalActionErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)

"""Data models for the Scribeflow application."""

from .capture import (
    CaptureState,
    CaptureSession,
    AudioRecordingResult,
    PersistedAudio,
    AudioStats,
    DurationStatus,
    format_duration,
)
from .processing import Phase, TranscriptionOutcome, SummaryOutcome, TranscriptionResponse
from .history import HistoryEntry, Selection
from .actions import CustomAction
from .events import (
    CaptureStateEvent,
    CaptureErrorEvent,
    DurationWarningEvent,
    SessionUpdateEvent,
    NoticeEvent,
)
from .errors import (
    CaptureErrorKind,
    CaptureError,
    StorageErrorKind,
    StorageError,
    TranscriptionErrorKind,
    SummarizationErrorKind,
    SummarizationError,
    HistoryError,
    StateTransitionError,
    ExternalActionErrorKind,
    ExternalActionError,
)

__all__ = [
    "CaptureState",
    "CaptureSession",
    "AudioRecordingResult",
    "PersistedAudio",
    "AudioStats",
    "DurationStatus",
    "format_duration",
    "Phase",
    "TranscriptionOutcome",
    "SummaryOutcome",
    "TranscriptionResponse",
    "HistoryEntry",
    "Selection",
    "CustomAction",
    # Events
    "CaptureStateEvent",
    "CaptureErrorEvent",
    "DurationWarningEvent",
    "SessionUpdateEvent",
    "NoticeEvent",
    # Errors
    "CaptureErrorKind",
    "CaptureError",
    "StorageErrorKind",
    "StorageError",
    "TranscriptionErrorKind",
    "SummarizationErrorKind",
    "SummarizationError",
    "HistoryError",
    "StateTransitionError",
    "ExternalActionErrorKind",
    "ExternalActionError",
]

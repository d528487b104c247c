"""Transcription and summary outcome models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import TranscriptionErrorKind, SummarizationErrorKind


class Phase(Enum):
    """Progress of one remote processing step."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TranscriptionOutcome:
    """Result of the speech-to-text step for the live session."""
    phase: Phase = Phase.IDLE
    text: Optional[str] = None
    error_kind: Optional[TranscriptionErrorKind] = None
    error_message: Optional[str] = None
    retryable: bool = False


@dataclass
class SummaryOutcome:
    """Result of the summarization step for the live session."""
    phase: Phase = Phase.IDLE
    markdown_text: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[SummarizationErrorKind] = None
    source_text: Optional[str] = None  # Transcription the summary belongs to


@dataclass
class TranscriptionResponse:
    """Response shape of a transcription backend."""
    success: bool
    text: Optional[str] = None
    error_kind: Optional[TranscriptionErrorKind] = None
    error_message: Optional[str] = None
    retryable: Optional[bool] = None

    @classmethod
    def ok(cls, text: str) -> "TranscriptionResponse":
        return cls(success=True, text=text)

    @classmethod
    def failure(cls, kind: TranscriptionErrorKind, detail: Optional[str] = None) -> "TranscriptionResponse":
        return cls(
            success=False,
            error_kind=kind,
            error_message=kind.user_message(detail),
            retryable=kind.retryable,
        )

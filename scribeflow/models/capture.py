"""Capture-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class CaptureState(Enum):
    """Lifecycle of one capture session."""
    IDLE = "idle"
    CAPTURING = "capturing"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class CaptureSession:
    """Capture fields of the live session."""
    capture_state: CaptureState = CaptureState.IDLE
    elapsed_seconds: int = 0
    warning_fired: bool = False
    audio_payload: Optional[bytes] = None
    mime_type: Optional[str] = None


@dataclass
class AudioRecordingResult:
    """Finalized audio of a stopped capture."""
    payload: bytes
    mime_type: str
    duration_seconds: float  # Wall-clock time since first start minus paused time


@dataclass
class PersistedAudio:
    """A completed capture written to durable storage."""
    storage_locator: str
    payload_size: int
    saved_at: datetime
    duration_seconds: int


@dataclass
class AudioStats:
    """Capture statistics."""
    is_capturing: bool
    duration_seconds: float
    total_chunks: int
    total_bytes: int
    peak_level: float = 0.0


def format_duration(total_seconds: int) -> str:
    """Format seconds as MM:SS."""
    total_seconds = max(0, int(total_seconds))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


@dataclass
class DurationStatus:
    """Elapsed/remaining time of the running session."""
    elapsed_seconds: int
    remaining_seconds: int
    show_warning: bool
    max_reached: bool

    @property
    def formatted_elapsed(self) -> str:
        return format_duration(self.elapsed_seconds)

    @property
    def formatted_remaining(self) -> str:
        return format_duration(self.remaining_seconds)

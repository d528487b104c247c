"""Event models published to session observers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .capture import CaptureState, AudioRecordingResult
from .errors import CaptureError


@dataclass
class CaptureStateEvent:
    """Capture state transition published by the capture engine."""
    previous: CaptureState
    current: CaptureState
    elapsed_seconds: int
    result: Optional[AudioRecordingResult] = None  # Set on transitions into STOPPED
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class CaptureErrorEvent:
    """Device failure, published after the device was released."""
    error: CaptureError
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class DurationWarningEvent:
    """Published once per session when the warning threshold is crossed."""
    elapsed_seconds: int
    remaining_seconds: int
    budget_seconds: int


@dataclass
class SessionUpdateEvent:
    """Published by the session store after every mutation."""
    reason: str
    generation: int


@dataclass
class NoticeEvent:
    """Side-channel message for the user (non-fatal warnings, completions)."""
    level: str  # "info", "warning", "error"
    title: str
    message: str

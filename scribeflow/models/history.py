"""History data models."""

import uuid
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any


@dataclass(frozen=True)
class HistoryEntry:
    """Durable record of a past session's transcription and optional summary."""
    id: str
    storage_locator: str
    duration_seconds: float
    transcription_text: str
    created_at: str  # ISO 8601, UTC
    summary_text: Optional[str] = None

    @classmethod
    def new(cls, storage_locator: str, duration_seconds: float, transcription_text: str) -> "HistoryEntry":
        """Create an entry with a generated UUID and the current timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            storage_locator=storage_locator,
            duration_seconds=duration_seconds,
            transcription_text=transcription_text,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    def with_summary(self, summary_text: str) -> "HistoryEntry":
        """Attaching a summary is the only mutation an entry allows."""
        return replace(self, summary_text=summary_text)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=data["id"],
            storage_locator=data["storage_locator"],
            duration_seconds=data.get("duration_seconds", 0),
            transcription_text=data.get("transcription_text", ""),
            created_at=data["created_at"],
            summary_text=data.get("summary_text"),
        )


@dataclass
class Selection:
    """Which historical entry the user is viewing, if any."""
    selected_history_id: Optional[str] = None

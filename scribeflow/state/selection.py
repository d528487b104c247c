"""Projection deciding which transcription and summary are on screen."""

from dataclasses import dataclass
from typing import Optional, Iterable

from ..models.history import HistoryEntry, Selection
from ..models.processing import Phase, TranscriptionOutcome, SummaryOutcome

SOURCE_LIVE = "live"
SOURCE_HISTORY = "history"


@dataclass
class DisplayState:
    """What the user currently sees."""
    source: str  # SOURCE_LIVE or SOURCE_HISTORY
    transcription_phase: Phase
    transcription_text: Optional[str]
    summary_phase: Phase
    summary_text: Optional[str]
    transcription_error: Optional[str] = None
    retryable: bool = False
    summary_error: Optional[str] = None
    entry: Optional[HistoryEntry] = None


def _find_entry(entries: Iterable[HistoryEntry], entry_id: Optional[str]) -> Optional[HistoryEntry]:
    if entry_id is None:
        return None
    for entry in entries:
        if entry.id == entry_id:
            return entry
    return None


def resolve(session, selection: Selection, history_entries: Iterable[HistoryEntry]) -> DisplayState:
    """Resolve the displayed transcription and summary.

    A selected history entry wins over the live session. For the selected
    entry, a live summary still takes priority over the stored one when it
    was produced from exactly the entry's transcription text: it may not
    have been persisted yet.

    Args:
        session: Anything exposing ``transcription`` (TranscriptionOutcome)
            and ``summary`` (SummaryOutcome), normally the SessionStateStore
        selection: Current selection
        history_entries: Known history entries

    Returns:
        DisplayState for rendering
    """
    transcription: TranscriptionOutcome = session.transcription
    summary: SummaryOutcome = session.summary

    entry = _find_entry(history_entries, selection.selected_history_id)
    if entry is None:
        return DisplayState(
            source=SOURCE_LIVE,
            transcription_phase=transcription.phase,
            transcription_text=transcription.text,
            transcription_error=transcription.error_message,
            retryable=transcription.retryable,
            summary_phase=summary.phase,
            summary_text=summary.markdown_text,
            summary_error=summary.error_message,
        )

    live_summary_matches = (
        summary.phase is not Phase.IDLE
        and summary.source_text is not None
        and summary.source_text == entry.transcription_text
    )
    if live_summary_matches:
        summary_phase = summary.phase
        summary_text = summary.markdown_text
        summary_error = summary.error_message
    else:
        summary_phase = Phase.SUCCESS if entry.summary_text else Phase.IDLE
        summary_text = entry.summary_text
        summary_error = None

    return DisplayState(
        source=SOURCE_HISTORY,
        transcription_phase=Phase.SUCCESS,
        transcription_text=entry.transcription_text,
        summary_phase=summary_phase,
        summary_text=summary_text,
        summary_error=summary_error,
        entry=entry,
    )

"""Session state store: the single writer-of-record for live session fields."""

import logging
from dataclasses import replace
from typing import Optional

from ..models.capture import CaptureState, CaptureSession, PersistedAudio
from ..models.errors import (
    CaptureError,
    StorageError,
    TranscriptionErrorKind,
    SummarizationErrorKind,
    StateTransitionError,
)
from ..models.events import CaptureStateEvent, SessionUpdateEvent
from ..models.history import Selection
from ..models.processing import Phase, TranscriptionOutcome, SummaryOutcome
from ..services.event_publisher import SessionEventPublisher, TOPIC_CAPTURE_STATE

logger = logging.getLogger(__name__)


class SessionStateStore:
    """Holds capture, transcription, summary and selection state.

    Readers get copies; every change goes through a method of this class so
    the phase invariants hold:

    - transcription moves idle -> running -> success|failed; only the
      clear operations (or a new session) bring it back to idle
    - a summary may only start running after a successful transcription
    - persisted audio is only recorded for a stopped, non-empty capture

    ``generation`` increases whenever a session is superseded
    (``clear_for_new_session``/``full_reset``); asynchronous work compares
    the generation it started under before writing results back.
    """

    def __init__(self, publisher: Optional[SessionEventPublisher] = None):
        """Initialize the store.

        Args:
            publisher: If given, capture transitions are applied from it and
                every mutation is announced on ``session_updated``
        """
        self.publisher = publisher
        self._generation = 0
        self._init_fields()

        if publisher is not None:
            publisher.subscribe(self._on_capture_state, TOPIC_CAPTURE_STATE)

    def _init_fields(self) -> None:
        self._capture = CaptureSession()
        self._persisted_audio: Optional[PersistedAudio] = None
        self._transcription = TranscriptionOutcome()
        self._summary = SummaryOutcome()
        self._selection = Selection()
        self._capture_error: Optional[CaptureError] = None
        self._storage_error: Optional[StorageError] = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def capture(self) -> CaptureSession:
        return replace(self._capture)

    @property
    def persisted_audio(self) -> Optional[PersistedAudio]:
        return replace(self._persisted_audio) if self._persisted_audio else None

    @property
    def transcription(self) -> TranscriptionOutcome:
        return replace(self._transcription)

    @property
    def summary(self) -> SummaryOutcome:
        return replace(self._summary)

    @property
    def selection(self) -> Selection:
        return replace(self._selection)

    @property
    def capture_error(self) -> Optional[CaptureError]:
        return self._capture_error

    @property
    def storage_error(self) -> Optional[StorageError]:
        return self._storage_error

    # ------------------------------------------------------------------
    # Capture session
    # ------------------------------------------------------------------

    def set_capture_state(self, state: CaptureState) -> None:
        self._capture.capture_state = state
        self._notify(f"capture_state:{state.value}")

    def increment_elapsed_seconds(self) -> None:
        self._capture.elapsed_seconds += 1
        self._notify("elapsed")

    def set_elapsed_seconds(self, seconds: int) -> None:
        """Set elapsed seconds; the value never moves backwards within a session."""
        seconds = int(seconds)
        if seconds < self._capture.elapsed_seconds:
            raise StateTransitionError(
                f"Elapsed time cannot decrease ({self._capture.elapsed_seconds} -> {seconds})")
        self._capture.elapsed_seconds = seconds
        self._notify("elapsed")

    def set_warning_fired(self, fired: bool) -> None:
        """Latch the duration warning; it is only cleared with the session."""
        if not fired and self._capture.warning_fired:
            raise StateTransitionError("Duration warning latch cannot be reset mid-session")
        self._capture.warning_fired = fired
        self._notify("warning")

    def set_audio_payload(self, payload: Optional[bytes], mime_type: Optional[str]) -> None:
        self._capture.audio_payload = payload
        self._capture.mime_type = mime_type
        self._notify("audio_payload")

    def set_persisted_audio(self, persisted: PersistedAudio) -> None:
        if self._capture.capture_state is not CaptureState.STOPPED:
            raise StateTransitionError(
                f"Audio can only be persisted for a stopped capture (state: {self._capture.capture_state.value})")
        if not self._capture.audio_payload:
            raise StateTransitionError("Cannot persist an empty capture")
        self._persisted_audio = persisted
        self._storage_error = None
        self._notify("persisted_audio")

    def clear_persisted_audio(self) -> None:
        self._persisted_audio = None
        self._notify("persisted_audio")

    def set_capture_error(self, error: Optional[CaptureError]) -> None:
        self._capture_error = error
        self._notify("capture_error")

    def set_storage_error(self, error: Optional[StorageError]) -> None:
        self._storage_error = error
        self._notify("storage_error")

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    def begin_transcription(self) -> None:
        """Move transcription to running.

        A finished outcome from an earlier session is replaced by a fresh
        idle one first; a running transcription cannot be started again.
        """
        phase = self._transcription.phase
        if phase is Phase.RUNNING:
            raise StateTransitionError("Transcription is already running")
        if phase is not Phase.IDLE:
            self._transcription = TranscriptionOutcome()
            self._clear_summary_fields()
        self._transcription.phase = Phase.RUNNING
        self._notify("transcription_running")

    def complete_transcription(self, text: str) -> None:
        self._require_transcription_phase(Phase.RUNNING, "complete")
        self._transcription = TranscriptionOutcome(phase=Phase.SUCCESS, text=text)
        self._notify("transcription_success")

    def fail_transcription(self, kind: TranscriptionErrorKind, message: str, retryable: bool) -> None:
        self._require_transcription_phase(Phase.RUNNING, "fail")
        self._transcription = TranscriptionOutcome(
            phase=Phase.FAILED,
            error_kind=kind,
            error_message=message,
            retryable=retryable,
        )
        self._notify("transcription_failed")

    def _require_transcription_phase(self, expected: Phase, action: str) -> None:
        if self._transcription.phase is not expected:
            raise StateTransitionError(
                f"Cannot {action} transcription in phase {self._transcription.phase.value}")

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def begin_summary(self, source_text: str) -> None:
        """Move the summary to running for the given transcription text."""
        if self._transcription.phase is not Phase.SUCCESS:
            raise StateTransitionError("A summary requires a successful transcription")
        if self._summary.phase is Phase.RUNNING:
            raise StateTransitionError("Summary is already running")
        self._summary = SummaryOutcome(phase=Phase.RUNNING, source_text=source_text)
        self._notify("summary_running")

    def complete_summary(self, markdown_text: str, source_text: str) -> None:
        if self._summary.phase is not Phase.RUNNING:
            raise StateTransitionError(f"Cannot complete summary in phase {self._summary.phase.value}")
        self._summary = SummaryOutcome(
            phase=Phase.SUCCESS,
            markdown_text=markdown_text,
            source_text=source_text,
        )
        self._notify("summary_success")

    def fail_summary(self, message: str, kind: Optional[SummarizationErrorKind] = None) -> None:
        if self._summary.phase is not Phase.RUNNING:
            raise StateTransitionError(f"Cannot fail summary in phase {self._summary.phase.value}")
        self._summary = SummaryOutcome(
            phase=Phase.FAILED,
            error_message=message,
            error_kind=kind,
            source_text=self._summary.source_text,
        )
        self._notify("summary_failed")

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_history_entry(self, entry_id: Optional[str]) -> None:
        """Select a history entry (or deselect with None).

        Live summary state is cleared either way: a summary is only valid
        for the transcription it was computed from.
        """
        self._selection = Selection(selected_history_id=entry_id)
        self._clear_summary_fields()
        self._notify("selection")

    # ------------------------------------------------------------------
    # Composite operations
    # ------------------------------------------------------------------

    def clear_for_retry(self) -> None:
        """Reset transcription and summary; keep persisted audio and duration."""
        self._transcription = TranscriptionOutcome()
        self._clear_summary_fields()
        self._notify("clear_for_retry")

    def clear_for_new_session(self) -> None:
        """Reset capture, persisted audio, summary and selection for a new recording.

        A finished transcription outcome stays visible until the next
        capture produces a new one; a running one belongs to the superseded
        session and is dropped.
        """
        if self._transcription.phase is Phase.RUNNING:
            self._transcription = TranscriptionOutcome()
        self._capture = CaptureSession()
        self._persisted_audio = None
        self._clear_summary_fields()
        self._selection = Selection()
        self._capture_error = None
        self._storage_error = None
        self._generation += 1
        self._notify("clear_for_new_session")

    def clear_summary_only(self) -> None:
        self._clear_summary_fields()
        self._notify("clear_summary")

    def full_reset(self) -> None:
        """Return every field to its initial value."""
        self._init_fields()
        self._generation += 1
        self._notify("full_reset")

    def reset_capture_session(self) -> None:
        """Return capture fields to idle, keeping results and persisted audio."""
        self._capture = CaptureSession()
        self._notify("reset_capture_session")

    def _clear_summary_fields(self) -> None:
        self._summary = SummaryOutcome()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def _on_capture_state(self, event: CaptureStateEvent) -> None:
        """Apply a capture transition published by the capture engine."""
        self._capture.capture_state = event.current
        if event.current is CaptureState.STOPPED and event.result is not None:
            self._capture.audio_payload = event.result.payload
            self._capture.mime_type = event.result.mime_type
            # Freeze at the measured duration; ticks may lag the wall clock
            self._capture.elapsed_seconds = max(self._capture.elapsed_seconds, event.elapsed_seconds)
        elif event.current is CaptureState.IDLE:
            self._capture.audio_payload = None
            self._capture.mime_type = None
        self._notify(f"capture_state:{event.current.value}")

    def _notify(self, reason: str) -> None:
        logger.debug(f"Session state changed: {reason} (generation {self._generation})")
        if self.publisher is not None:
            self.publisher.publish_session_update(SessionUpdateEvent(reason=reason, generation=self._generation))

"""Recording service: the controller wiring capture, timing, persistence and processing."""

import asyncio
import logging
from datetime import datetime
from typing import Optional, List, Sequence, Set

from ..actions.external_client import ExternalActionClient
from ..audio.capture import AudioCaptureEngine
from ..audio.duration import DurationTracker
from ..models.capture import CaptureState, AudioRecordingResult, PersistedAudio, DurationStatus
from ..models.actions import CustomAction
from ..models.errors import CaptureError, StorageError, HistoryError, StateTransitionError, ExternalActionError
from ..models.events import CaptureErrorEvent
from ..models.history import HistoryEntry
from ..models.processing import Phase
from ..state.selection import DisplayState, resolve
from ..state.session_store import SessionStateStore
from ..storage.file_manager import RecordingStorage
from ..storage.history_store import JsonHistoryStore
from ..summarization.base import AbstractSummarizationEngine
from ..transcription.base import AbstractTranscriptionBackend
from .event_publisher import SessionEventPublisher, TOPIC_CAPTURE_ERROR
from .processing_orchestrator import ProcessingOrchestrator

logger = logging.getLogger(__name__)


class RecordingService:
    """Core service that manages the recording lifecycle.

    The capture engine, duration tracker and session store talk through the
    publisher; this service issues the user-level commands and runs the
    stop -> persist -> process sequence.
    """

    def __init__(self,
                 capture_engine: AudioCaptureEngine,
                 store: SessionStateStore,
                 recording_storage: RecordingStorage,
                 history: JsonHistoryStore,
                 transcriber: AbstractTranscriptionBackend,
                 summarizer: AbstractSummarizationEngine,
                 publisher: SessionEventPublisher,
                 budget_seconds: int,
                 tick_interval: float = 1.0,
                 custom_actions: Sequence[CustomAction] = (),
                 action_client: Optional[ExternalActionClient] = None):
        """Initialize recording service.

        Args:
            capture_engine: Capture engine owning the recording device
            store: Session state store
            recording_storage: Persistence for finished recordings
            history: History of past transcriptions
            transcriber: Speech-to-text backend
            summarizer: Summarization engine
            publisher: Session event publisher shared by all components
            budget_seconds: Maximum recording duration
            tick_interval: Duration tracker tick in seconds
            custom_actions: Endpoints the displayed transcription can be sent to
            action_client: HTTP client for custom actions
        """
        self.capture_engine = capture_engine
        self.store = store
        self.recording_storage = recording_storage
        self.history = history
        self.publisher = publisher

        self.duration_tracker = DurationTracker(
            store=store,
            publisher=publisher,
            budget_seconds=budget_seconds,
            on_auto_stop=self._auto_stop,
            tick_interval=tick_interval,
        )
        self.orchestrator = ProcessingOrchestrator(
            store=store,
            transcriber=transcriber,
            summarizer=summarizer,
            history=history,
            publisher=publisher,
            recording_storage=recording_storage,
            capture_engine=capture_engine,
            on_history_changed=self.load_history,
        )

        self.custom_actions = list(custom_actions)
        self.action_client = action_client or ExternalActionClient()
        self._running_actions: Set[str] = set()

        self.history_entries: List[HistoryEntry] = []
        self._finalizing = False

        publisher.subscribe(self._on_capture_error, TOPIC_CAPTURE_ERROR)
        logger.info("RecordingService ready")

    @property
    def is_busy(self) -> bool:
        """True while a stopped recording is being saved or processed."""
        return self._finalizing or self.orchestrator.is_processing

    # ------------------------------------------------------------------
    # Capture commands
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Start a new recording, or resume a paused one.

        Returns:
            True if capture is running afterwards
        """
        if self.is_busy:
            self.publisher.publish_notice("info", "Busy", "Still processing the previous recording")
            return False

        if self.capture_engine.is_active:
            return self.resume()

        self.store.clear_for_new_session()
        try:
            await self.capture_engine.start()
        except CaptureError as e:
            # Already recorded through the capture_error topic
            logger.debug(f"Start failed: {e.kind.value}")
            return False

        logger.info("Recording started")
        return True

    def pause(self) -> bool:
        return self.capture_engine.pause()

    def resume(self) -> bool:
        return self.capture_engine.resume()

    async def stop(self) -> Optional[AudioRecordingResult]:
        """Stop recording, persist the audio and run the processing pipeline.

        Returns:
            The recording result, or None if nothing was stopped by this call
        """
        if self._finalizing:
            logger.warning("Stop already in progress")
            return None

        self._finalizing = True
        try:
            try:
                result = await self.capture_engine.stop()
            except CaptureError as e:
                logger.debug(f"Stop failed: {e.kind.value}")
                return None
            if result is None:
                return None

            if not result.payload:
                self.publisher.publish_notice("warning", "Nothing recorded", "No audio was captured")
                self._reset_capture()
                return result

            generation = self.store.generation
            persisted = await self._persist(result, generation)
            if persisted is None:
                if self.store.generation == generation:
                    self._reset_capture()
                return result
        finally:
            self._finalizing = False

        await self.orchestrator.process_recording(persisted.storage_locator, result.duration_seconds)
        return result

    async def toggle(self) -> None:
        """Hotkey rule: start when idle or stopped, stop when capturing or paused."""
        if self.capture_engine.is_active:
            await self.stop()
        else:
            await self.start()

    def toggle_pause(self) -> bool:
        if self.capture_engine.state is CaptureState.PAUSED:
            return self.resume()
        return self.pause()

    async def retry(self) -> bool:
        """Re-run the pipeline for a recording whose transcription failed transiently."""
        if self.is_busy or self.capture_engine.is_active:
            return False

        transcription = self.store.transcription
        persisted = self.store.persisted_audio
        if transcription.phase is not Phase.FAILED or not transcription.retryable or persisted is None:
            self.publisher.publish_notice("info", "Nothing to retry", "There is no failed transcription to retry")
            return False

        logger.info(f"Retrying transcription for {persisted.storage_locator}")
        self.store.clear_for_retry()
        return await self.orchestrator.process_recording(persisted.storage_locator, persisted.duration_seconds)

    def reset(self) -> None:
        """Discard the current session. In-flight results are ignored when they arrive."""
        if self.capture_engine.holds_device or self.capture_engine.is_active:
            logger.info("Discarding active recording")
        self.capture_engine.reset()
        self.duration_tracker.stop()
        self.store.full_reset()

    def close(self) -> None:
        """Teardown: cancel the timer, release the device and unsubscribe."""
        self.duration_tracker.close()
        if self.capture_engine.holds_device:
            self.capture_engine.reset()
        self.publisher.unsubscribe(self._on_capture_error, TOPIC_CAPTURE_ERROR)
        logger.info("RecordingService closed")

    def duration_status(self) -> DurationStatus:
        return self.duration_tracker.status()

    async def wait_until_idle(self, poll_interval: float = 0.1) -> None:
        """Wait until a stop, including one triggered by auto-stop, has finished processing."""
        while self.is_busy or self.duration_tracker.auto_stop_pending:
            await asyncio.sleep(poll_interval)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_history(self) -> List[HistoryEntry]:
        try:
            self.history_entries = await self.history.list()
        except HistoryError as e:
            self.publisher.publish_notice("error", "History unavailable", str(e))
        return list(self.history_entries)

    def select_history_entry(self, entry_id: Optional[str]) -> None:
        self.store.select_history_entry(entry_id)

    async def delete_history_entry(self, entry_id: str) -> bool:
        try:
            await self.history.delete(entry_id)
        except HistoryError as e:
            self.publisher.publish_notice("error", "Delete failed", str(e))
            return False
        if self.store.selection.selected_history_id == entry_id:
            self.store.select_history_entry(None)
        await self.load_history()
        return True

    async def clear_history(self) -> int:
        try:
            removed = await self.history.clear()
        except HistoryError as e:
            self.publisher.publish_notice("error", "Clear failed", str(e))
            return 0
        if self.store.selection.selected_history_id is not None:
            self.store.select_history_entry(None)
        await self.load_history()
        return removed

    def display_state(self) -> DisplayState:
        """What the user should currently see."""
        return resolve(self.store, self.store.selection, self.history_entries)

    # ------------------------------------------------------------------
    # Custom actions
    # ------------------------------------------------------------------

    async def run_custom_action(self, name: str) -> bool:
        """Send the displayed transcription to the custom action called ``name``.

        The outcome is reported as a notice.

        Returns:
            True if the endpoint accepted the transcription
        """
        action = next((a for a in self.custom_actions if a.name == name), None)
        if action is None:
            self.publisher.publish_notice("error", "Unknown action", f"No custom action named '{name}'")
            return False

        text = self.display_state().transcription_text
        if not text:
            self.publisher.publish_notice("info", f"{name} skipped", "There is no transcription to send")
            return False
        if name in self._running_actions:
            logger.info(f"Custom action '{name}' already running")
            return False

        self._running_actions.add(name)
        try:
            message = await self.action_client.send(action.url, text)
        except ExternalActionError as e:
            logger.warning(f"Custom action '{name}' failed: {e.kind.value}")
            self.publisher.publish_notice("error", f"{name} failed", e.message)
            return False
        finally:
            self._running_actions.discard(name)

        self.publisher.publish_notice("info", f"{name} completed", message)
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _persist(self, result: AudioRecordingResult, generation: int) -> Optional[PersistedAudio]:
        try:
            locator = await self.recording_storage.save(result.payload, result.mime_type)
        except StorageError as e:
            if self.store.generation == generation:
                self.store.set_storage_error(e)
                self.publisher.publish_notice("error", "Recording not saved", e.message)
            return None

        persisted = PersistedAudio(
            storage_locator=locator,
            payload_size=len(result.payload),
            saved_at=datetime.now(),
            duration_seconds=int(round(result.duration_seconds)),
        )
        if self.store.generation != generation:
            logger.info(f"Session discarded while saving; removing {locator}")
            await self._discard_recording(locator)
            return None
        try:
            self.store.set_persisted_audio(persisted)
        except StateTransitionError as e:
            logger.warning(f"Recording no longer belongs to a stopped capture: {e}")
            await self._discard_recording(locator)
            return None
        return persisted

    async def _discard_recording(self, locator: str) -> None:
        try:
            await self.recording_storage.delete(locator)
        except StorageError as e:
            logger.error(f"Failed to remove discarded recording {locator}: {e.message}")

    def _reset_capture(self) -> None:
        self.capture_engine.reset()
        self.store.reset_capture_session()

    def _auto_stop(self):
        logger.info("Recording budget reached")
        self.publisher.publish_notice("info", "Maximum duration reached", "Recording stopped automatically")
        return self.stop()

    def _on_capture_error(self, event: CaptureErrorEvent) -> None:
        self.store.set_capture_error(event.error)
        self.publisher.publish_notice("error", "Recording error", event.error.message)

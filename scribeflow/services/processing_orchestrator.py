"""Runs transcription then summarization for one persisted recording."""

import asyncio
import inspect
import logging
from typing import Optional, Callable, Any

import aiohttp

from ..audio.capture import AudioCaptureEngine
from ..models.errors import (
    TranscriptionErrorKind,
    SummarizationError,
    SummarizationErrorKind,
    HistoryError,
    StorageError,
)
from ..models.processing import Phase, TranscriptionResponse
from ..state.session_store import SessionStateStore
from ..storage.file_manager import RecordingStorage
from ..storage.history_store import JsonHistoryStore
from ..summarization.base import AbstractSummarizationEngine
from ..transcription.base import AbstractTranscriptionBackend
from .event_publisher import SessionEventPublisher

logger = logging.getLogger(__name__)


class ProcessingOrchestrator:
    """Sequences the remote processing pipeline for a saved recording.

    Only one pipeline runs at a time: a call made while another is in
    flight is dropped, not queued. Each run remembers the store generation
    it started under; once the session is superseded (new recording or
    reset) any late result is discarded instead of written to the store.
    No exception escapes ``process_recording``.
    """

    def __init__(self,
                 store: SessionStateStore,
                 transcriber: AbstractTranscriptionBackend,
                 summarizer: AbstractSummarizationEngine,
                 history: JsonHistoryStore,
                 publisher: SessionEventPublisher,
                 recording_storage: Optional[RecordingStorage] = None,
                 capture_engine: Optional[AudioCaptureEngine] = None,
                 on_history_changed: Optional[Callable[[], Any]] = None):
        """Initialize the orchestrator.

        Args:
            store: Session state store receiving all outcomes
            transcriber: Speech-to-text backend
            summarizer: Summarization engine
            history: History store for created entries and attached summaries
            publisher: Publisher for side-channel notices
            recording_storage: Used to delete audio after a non-retryable failure
            capture_engine: Reset to idle when a run finishes
            on_history_changed: Called (and awaited if it returns an awaitable)
                after history was written
        """
        self.store = store
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.history = history
        self.publisher = publisher
        self.recording_storage = recording_storage
        self.capture_engine = capture_engine
        self.on_history_changed = on_history_changed
        self._processing = False

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def process_recording(self, storage_locator: str, duration_seconds: float) -> bool:
        """Run the pipeline for a persisted recording.

        Returns:
            False if the call was dropped because a run was already in flight
        """
        if self._processing:
            logger.warning(f"Processing already in progress, ignoring request for {storage_locator}")
            return False

        self._processing = True
        generation = self.store.generation
        logger.info(f"Processing recording {storage_locator} ({duration_seconds:.1f}s, generation {generation})")
        try:
            await self._run(generation, storage_locator, duration_seconds)
        except Exception as e:
            logger.exception(f"Unexpected error while processing {storage_locator}: {e}")
            if self._is_current(generation):
                self.publisher.publish_notice("error", "Processing failed", str(e))
        finally:
            self._processing = False
            if self._is_current(generation):
                self._reset_capture()
        return True

    async def _run(self, generation: int, storage_locator: str, duration_seconds: float) -> None:
        self.store.begin_transcription()
        response = await self._transcribe(storage_locator)

        if not self._is_current(generation):
            logger.info("Session superseded during transcription, discarding result")
            return

        text = (response.text or "").strip() if response.success else ""
        if not response.success or not text:
            if response.success:
                response = TranscriptionResponse.failure(TranscriptionErrorKind.UNKNOWN, "Empty transcription")
            await self._handle_transcription_failure(response, storage_locator)
            return

        self.store.complete_transcription(text)
        logger.info(f"Transcription complete ({len(text)} chars)")

        entry_id = await self._create_history_entry(storage_locator, duration_seconds, text)
        if not self._is_current(generation):
            logger.info("Session superseded while saving history, skipping summary")
            return
        if entry_id is not None:
            self.store.select_history_entry(entry_id)

        await self._summarize(generation, text, entry_id)

    async def _transcribe(self, storage_locator: str) -> TranscriptionResponse:
        try:
            return await self.transcriber.transcribe(storage_locator)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Transcription request failed: {e!r}")
            return TranscriptionResponse.failure(TranscriptionErrorKind.NETWORK_ERROR, str(e))
        except Exception as e:
            logger.exception(f"Transcription backend raised: {e}")
            return TranscriptionResponse.failure(TranscriptionErrorKind.UNKNOWN, str(e))

    async def _handle_transcription_failure(self, response: TranscriptionResponse, storage_locator: str) -> None:
        kind = response.error_kind or TranscriptionErrorKind.UNKNOWN
        retryable = kind.retryable if response.retryable is None else response.retryable
        message = response.error_message or kind.user_message()
        self.store.fail_transcription(kind, message, retryable)
        logger.warning(f"Transcription failed ({kind.value}, retryable={retryable}): {message}")

        if retryable:
            return

        # A non-retryable failure needs a new recording; drop the old audio
        if self.recording_storage is not None:
            try:
                await self.recording_storage.delete(storage_locator)
            except StorageError as e:
                logger.warning(f"Could not delete recording {storage_locator}: {e.message}")
        self.store.clear_persisted_audio()

    async def _create_history_entry(self, storage_locator: str, duration_seconds: float, text: str) -> Optional[str]:
        try:
            entry_id = await self.history.create(storage_locator, duration_seconds, text)
        except HistoryError as e:
            self.publisher.publish_notice("warning", "History not saved", f"Transcription could not be saved: {e}")
            return None
        await self._history_changed()
        return entry_id

    async def _summarize(self, generation: int, text: str, entry_id: Optional[str]) -> None:
        self.store.begin_summary(text)
        try:
            markdown = await self.summarizer.summarize(text)
        except SummarizationError as e:
            if self._is_current(generation) and self._summary_pending_for(text):
                self.store.fail_summary(e.message, e.kind)
            logger.warning(f"Summarization failed ({e.kind.value}): {e.message}")
            return
        except Exception as e:
            logger.exception(f"Summarization engine raised: {e}")
            if self._is_current(generation) and self._summary_pending_for(text):
                self.store.fail_summary(str(e), SummarizationErrorKind.UNKNOWN)
            return

        if not self._is_current(generation):
            logger.info("Session superseded during summarization, discarding summary")
            return

        if self._summary_pending_for(text):
            self.store.complete_summary(markdown, text)
        else:
            logger.info("Selection changed during summarization; summary saved to history only")

        if entry_id is None:
            return
        try:
            await self.history.attach_summary(entry_id, markdown)
        except HistoryError as e:
            self.publisher.publish_notice("warning", "Summary not saved", f"Summary could not be saved to history: {e}")
            return
        await self._history_changed()

    def _summary_pending_for(self, text: str) -> bool:
        summary = self.store.summary
        return summary.phase is Phase.RUNNING and summary.source_text == text

    async def _history_changed(self) -> None:
        if self.on_history_changed is None:
            return
        try:
            outcome = self.on_history_changed()
            if inspect.isawaitable(outcome):
                await outcome
        except HistoryError as e:
            logger.warning(f"Could not refresh history: {e}")

    def _is_current(self, generation: int) -> bool:
        return self.store.generation == generation

    def _reset_capture(self) -> None:
        """Return capture to idle; transcription and summary stay on display."""
        if self.capture_engine is not None:
            self.capture_engine.reset()
        self.store.reset_capture_session()

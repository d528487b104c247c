"""Unit tests for ProcessingOrchestrator."""

import asyncio
import os
from unittest.mock import AsyncMock

import aiohttp
import pytest

from conftest import FakeTranscriber
from scribeflow.models.capture import CaptureState
from scribeflow.models.errors import (
    TranscriptionErrorKind,
    SummarizationErrorKind,
    HistoryError,
)
from scribeflow.models.processing import Phase, TranscriptionResponse
from scribeflow.services.event_publisher import TOPIC_NOTICE
from scribeflow.services.processing_orchestrator import ProcessingOrchestrator
from scribeflow.storage.file_manager import RecordingStorage
from scribeflow.storage.history_store import JsonHistoryStore


@pytest.fixture
def history(temp_data_dir):
    return JsonHistoryStore(temp_data_dir)


@pytest.fixture
def make_orchestrator(store, publisher, history, temp_data_dir, capture_engine, fake_summarizer):
    def make(transcriber, summarizer=None):
        return ProcessingOrchestrator(
            store=store,
            transcriber=transcriber,
            summarizer=summarizer or fake_summarizer,
            history=history,
            publisher=publisher,
            recording_storage=RecordingStorage(temp_data_dir),
            capture_engine=capture_engine,
        )
    return make


async def record_and_stop(capture_engine, fake_device):
    await capture_engine.start()
    fake_device.last_handle.emit(b"audio")
    await capture_engine.stop()


@pytest.mark.unit
class TestProcessingOrchestrator:
    """Test cases for the transcription -> summarization pipeline."""

    def test_successful_pipeline(self, make_orchestrator, store, history, capture_engine, fake_device,
                                 fake_summarizer, sample_audio_file):
        orchestrator = make_orchestrator(FakeTranscriber(TranscriptionResponse.ok("hello world")))

        async def scenario():
            await record_and_stop(capture_engine, fake_device)
            processed = await orchestrator.process_recording(sample_audio_file, 12.4)
            return processed, await history.list()

        processed, entries = asyncio.run(scenario())

        assert processed is True
        assert store.transcription.phase is Phase.SUCCESS
        assert store.transcription.text == "hello world"
        summary = store.summary
        assert summary.phase is Phase.SUCCESS
        assert summary.markdown_text == "## Summary\n- point"
        assert summary.source_text == "hello world"
        assert fake_summarizer.calls == ["hello world"]

        assert len(entries) == 1
        assert entries[0].transcription_text == "hello world"
        assert entries[0].storage_locator == sample_audio_file
        assert entries[0].duration_seconds == 12.4
        assert entries[0].summary_text == "## Summary\n- point"
        assert store.selection.selected_history_id == entries[0].id

        assert capture_engine.state is CaptureState.IDLE
        assert store.capture.capture_state is CaptureState.IDLE
        assert orchestrator.is_processing is False

    def test_retryable_failure_keeps_audio(self, make_orchestrator, store, history, capture_engine,
                                           fake_device, fake_summarizer, sample_audio_file):
        orchestrator = make_orchestrator(FakeTranscriber(
            TranscriptionResponse.failure(TranscriptionErrorKind.NETWORK_ERROR, "offline")))

        async def scenario():
            await record_and_stop(capture_engine, fake_device)
            await orchestrator.process_recording(sample_audio_file, 3)
            return await history.list()

        entries = asyncio.run(scenario())

        transcription = store.transcription
        assert transcription.phase is Phase.FAILED
        assert transcription.error_kind is TranscriptionErrorKind.NETWORK_ERROR
        assert transcription.retryable is True
        assert capture_engine.state is CaptureState.IDLE
        assert entries == []
        assert fake_summarizer.calls == []
        assert os.path.exists(sample_audio_file)

    def test_non_retryable_failure_deletes_audio(self, make_orchestrator, store, sample_audio_file):
        orchestrator = make_orchestrator(FakeTranscriber(
            TranscriptionResponse.failure(TranscriptionErrorKind.INVALID_API_KEY)))

        asyncio.run(orchestrator.process_recording(sample_audio_file, 3))

        assert store.transcription.retryable is False
        assert store.transcription.error_kind is TranscriptionErrorKind.INVALID_API_KEY
        assert store.persisted_audio is None
        assert not os.path.exists(sample_audio_file)

    def test_concurrent_calls_run_once(self, make_orchestrator, sample_audio_file):
        transcriber = FakeTranscriber()
        orchestrator = make_orchestrator(transcriber)

        async def scenario():
            transcriber.gate = asyncio.Event()
            first = asyncio.ensure_future(orchestrator.process_recording(sample_audio_file, 3))
            await asyncio.sleep(0)
            second = await orchestrator.process_recording(sample_audio_file, 3)
            transcriber.gate.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert (first, second) == (True, False)
        assert transcriber.calls == [sample_audio_file]

    def test_summary_failure_keeps_transcription(self, make_orchestrator, store, history,
                                                 failing_summarizer, sample_audio_file):
        orchestrator = make_orchestrator(FakeTranscriber(), failing_summarizer)

        async def scenario():
            await orchestrator.process_recording(sample_audio_file, 3)
            return await history.list()

        entries = asyncio.run(scenario())

        assert store.transcription.phase is Phase.SUCCESS
        summary = store.summary
        assert summary.phase is Phase.FAILED
        assert summary.error_kind is SummarizationErrorKind.API_ERROR
        assert "boom" in summary.error_message
        assert len(entries) == 1
        assert entries[0].summary_text is None

    def test_attach_failure_keeps_summary_visible(self, make_orchestrator, store, history, event_recorder,
                                                  sample_audio_file):
        notices = event_recorder(TOPIC_NOTICE)
        history.attach_summary = AsyncMock(side_effect=HistoryError("disk full"))
        orchestrator = make_orchestrator(FakeTranscriber())

        asyncio.run(orchestrator.process_recording(sample_audio_file, 3))

        assert store.summary.phase is Phase.SUCCESS
        assert store.summary.markdown_text == "## Summary\n- point"
        history.attach_summary.assert_awaited_once()
        assert [(n.level, n.title) for n in notices[TOPIC_NOTICE]] == [("warning", "Summary not saved")]

    def test_history_create_failure_still_summarizes(self, make_orchestrator, store, history, event_recorder,
                                                     fake_summarizer, sample_audio_file):
        notices = event_recorder(TOPIC_NOTICE)
        history.create = AsyncMock(side_effect=HistoryError("read-only"))
        history.attach_summary = AsyncMock()
        orchestrator = make_orchestrator(FakeTranscriber())

        asyncio.run(orchestrator.process_recording(sample_audio_file, 3))

        assert store.transcription.phase is Phase.SUCCESS
        assert store.selection.selected_history_id is None
        assert store.summary.phase is Phase.SUCCESS
        history.attach_summary.assert_not_awaited()
        assert notices[TOPIC_NOTICE][0].title == "History not saved"

    @pytest.mark.parametrize("error, kind, retryable", [
        (aiohttp.ClientConnectionError("refused"), TranscriptionErrorKind.NETWORK_ERROR, True),
        (asyncio.TimeoutError(), TranscriptionErrorKind.NETWORK_ERROR, True),
        (RuntimeError("bug"), TranscriptionErrorKind.UNKNOWN, False),
    ])
    def test_raised_transcription_errors_become_outcomes(self, make_orchestrator, store, sample_audio_file,
                                                         error, kind, retryable):
        transcriber = FakeTranscriber()
        transcriber.error = error
        orchestrator = make_orchestrator(transcriber)

        assert asyncio.run(orchestrator.process_recording(sample_audio_file, 3)) is True

        assert store.transcription.phase is Phase.FAILED
        assert store.transcription.error_kind is kind
        assert store.transcription.retryable is retryable

    def test_empty_transcription_is_a_failure(self, make_orchestrator, store, fake_summarizer, sample_audio_file):
        orchestrator = make_orchestrator(FakeTranscriber(TranscriptionResponse.ok("   ")))

        asyncio.run(orchestrator.process_recording(sample_audio_file, 3))

        assert store.transcription.phase is Phase.FAILED
        assert store.transcription.error_kind is TranscriptionErrorKind.UNKNOWN
        assert fake_summarizer.calls == []

    def test_late_transcription_for_superseded_session_is_discarded(self, make_orchestrator, store, history,
                                                                    fake_summarizer, sample_audio_file):
        transcriber = FakeTranscriber()
        orchestrator = make_orchestrator(transcriber)

        async def scenario():
            transcriber.gate = asyncio.Event()
            task = asyncio.ensure_future(orchestrator.process_recording(sample_audio_file, 3))
            await asyncio.sleep(0)
            store.clear_for_new_session()
            transcriber.gate.set()
            await task
            return await history.list()

        entries = asyncio.run(scenario())

        assert store.transcription.phase is Phase.IDLE
        assert entries == []
        assert fake_summarizer.calls == []
        assert orchestrator.is_processing is False

    def test_late_summary_after_reset_is_discarded(self, make_orchestrator, store, fake_summarizer,
                                                   sample_audio_file):
        orchestrator = make_orchestrator(FakeTranscriber())

        async def scenario():
            fake_summarizer.gate = asyncio.Event()
            task = asyncio.ensure_future(orchestrator.process_recording(sample_audio_file, 3))
            while store.summary.phase is not Phase.RUNNING:
                await asyncio.sleep(0.001)
            store.full_reset()
            fake_summarizer.gate.set()
            await task

        asyncio.run(scenario())

        assert store.summary.phase is Phase.IDLE
        assert store.transcription.phase is Phase.IDLE

"""Integration tests for the complete recording -> transcription -> summary workflow."""

import asyncio
import json
import os
import wave
from pathlib import Path

import pytest

from conftest import FakeTranscriber
from scribeflow.audio.capture import AudioCaptureEngine
from scribeflow.models.capture import CaptureState
from scribeflow.models.errors import TranscriptionErrorKind
from scribeflow.models.processing import Phase, TranscriptionResponse
from scribeflow.services.event_publisher import TOPIC_CAPTURE_STATE, TOPIC_SESSION_UPDATED
from scribeflow.services.recording_service import RecordingService
from scribeflow.state.selection import SOURCE_HISTORY, SOURCE_LIVE
from scribeflow.storage.file_manager import RecordingStorage
from scribeflow.storage.history_store import JsonHistoryStore, HISTORY_FILENAME


@pytest.fixture
def workflow(temp_data_dir, publisher, store, fake_device, fake_clock, fake_summarizer):
    """A RecordingService over real storage and history in a temp directory."""
    def make(transcriber):
        recording_storage = RecordingStorage(temp_data_dir)
        recording_storage.ensure_storage_ready()
        return RecordingService(
            capture_engine=AudioCaptureEngine(fake_device, publisher, clock=fake_clock),
            store=store,
            recording_storage=recording_storage,
            history=JsonHistoryStore(temp_data_dir, recording_storage=recording_storage),
            transcriber=transcriber,
            summarizer=fake_summarizer,
            publisher=publisher,
            budget_seconds=60,
            tick_interval=60.0,
        )
    return make


async def record_session(service, fake_device, fake_clock, chunk, seconds, pause_seconds=0):
    await service.start()
    handle = fake_device.last_handle
    handle.emit(chunk)
    fake_clock.advance(seconds / 2)
    if pause_seconds:
        service.pause()
        fake_clock.advance(pause_seconds)
        service.resume()
    handle.pending_chunks.append(chunk)
    fake_clock.advance(seconds / 2)
    return await service.stop()


@pytest.mark.integration
class TestRecordingWorkflowIntegration:
    """Integration tests for complete sessions."""

    def test_complete_session(self, workflow, temp_data_dir, store, fake_device, fake_clock,
                              sample_audio_chunk, event_recorder):
        events = event_recorder(TOPIC_CAPTURE_STATE, TOPIC_SESSION_UPDATED)
        service = workflow(FakeTranscriber(TranscriptionResponse.ok("Meeting notes for Monday")))

        result = asyncio.run(record_session(service, fake_device, fake_clock, sample_audio_chunk,
                                            seconds=10, pause_seconds=4))

        # Pauses do not count towards the duration
        assert result.duration_seconds == 10
        assert result.payload == sample_audio_chunk * 2

        # Saved as WAV in the recordings directory
        recordings = list((Path(temp_data_dir) / "recordings").iterdir())
        assert len(recordings) == 1
        with wave.open(str(recordings[0]), 'rb') as wf:
            assert wf.getframerate() == 16000
            assert wf.readframes(wf.getnframes()) == sample_audio_chunk * 2

        # History file on disk holds transcription and summary
        with open(os.path.join(temp_data_dir, HISTORY_FILENAME), encoding='utf-8') as f:
            stored = json.load(f)
        assert len(stored) == 1
        assert stored[0]["transcription_text"] == "Meeting notes for Monday"
        assert stored[0]["summary_text"] == "## Summary\n- point"
        assert stored[0]["storage_locator"] == str(recordings[0])
        assert stored[0]["duration_seconds"] == 10

        transitions = [e.current for e in events[TOPIC_CAPTURE_STATE]]
        assert transitions == [
            CaptureState.CAPTURING,
            CaptureState.PAUSED,
            CaptureState.CAPTURING,
            CaptureState.STOPPED,
            CaptureState.IDLE,
        ]
        reasons = [e.reason for e in events[TOPIC_SESSION_UPDATED]]
        assert reasons.index("transcription_running") < reasons.index("transcription_success")
        assert reasons.index("transcription_success") < reasons.index("summary_success")

        display = service.display_state()
        assert display.source == SOURCE_HISTORY
        assert display.transcription_text == "Meeting notes for Monday"
        assert display.summary_text == "## Summary\n- point"
        assert store.capture.capture_state is CaptureState.IDLE

    def test_failed_then_retried_session(self, workflow, temp_data_dir, store, fake_device, fake_clock,
                                         sample_audio_chunk):
        transcriber = FakeTranscriber(
            TranscriptionResponse.failure(TranscriptionErrorKind.RATE_LIMIT_EXCEEDED),
            TranscriptionResponse.ok("Recovered text"),
        )
        service = workflow(transcriber)

        async def scenario():
            await record_session(service, fake_device, fake_clock, sample_audio_chunk, seconds=4)
            failed_display = service.display_state()
            await service.retry()
            return failed_display

        failed_display = asyncio.run(scenario())

        assert failed_display.source == SOURCE_LIVE
        assert failed_display.transcription_phase is Phase.FAILED
        assert failed_display.retryable is True
        assert "Rate limit" in failed_display.transcription_error

        assert store.transcription.text == "Recovered text"
        assert [e.transcription_text for e in service.history_entries] == ["Recovered text"]
        assert len(list((Path(temp_data_dir) / "recordings").iterdir())) == 1

    def test_history_across_sessions_and_restart(self, workflow, temp_data_dir, publisher, store, fake_device,
                                                 fake_clock, sample_audio_chunk):
        transcriber = FakeTranscriber(
            TranscriptionResponse.ok("first session"),
            TranscriptionResponse.ok("second session"),
        )
        service = workflow(transcriber)

        async def scenario():
            await record_session(service, fake_device, fake_clock, sample_audio_chunk, seconds=3)
            await record_session(service, fake_device, fake_clock, sample_audio_chunk, seconds=5)
            # A fresh store instance sees the same history
            return await JsonHistoryStore(temp_data_dir).list()

        reloaded = asyncio.run(scenario())

        assert [e.transcription_text for e in reloaded] == ["second session", "first session"]
        assert [e.duration_seconds for e in reloaded] == [5, 3]

        service.select_history_entry(reloaded[1].id)
        display = service.display_state()
        assert display.transcription_text == "first session"
        assert display.summary_text == "## Summary\n- point"

        service.reset()
        assert store.selection.selected_history_id is None
        assert store.transcription.phase is Phase.IDLE
        assert len(service.history_entries) == 2

"""Pytest configuration and fixtures for Scribeflow tests."""

import asyncio
import logging
import tempfile
import wave
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

from scribeflow.audio.capture import AudioCaptureEngine
from scribeflow.audio.device import AudioDevice, AudioDeviceHandle
from scribeflow.models.errors import SummarizationError, SummarizationErrorKind
from scribeflow.models.processing import TranscriptionResponse
from scribeflow.services.event_publisher import SessionEventPublisher
from scribeflow.state.session_store import SessionStateStore
from scribeflow.summarization.base import AbstractSummarizationEngine
from scribeflow.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond temp directories")
    config.addinivalue_line("markers", "integration: multi-component workflow tests")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHandle(AudioDeviceHandle):
    """Device handle driven by the test.

    ``stop()`` flushes ``pending_chunks`` and signals stop on the next loop
    iteration, like a real recorder finishing asynchronously.
    """

    def __init__(self, mime_type: str = "audio/L16;rate=16000;channels=1"):
        self._mime_type = mime_type
        self.data_callback = None
        self.stop_callback = None
        self.error_callback = None
        self.pending_chunks: List[bytes] = []
        self.started = False
        self.paused = False
        self.stop_calls = 0
        self.release_calls = 0
        self.stop_error: Optional[Exception] = None

    @property
    def mime_type(self) -> str:
        return self._mime_type

    @property
    def peak_level(self) -> float:
        return 0.5

    @property
    def released(self) -> bool:
        return self.release_calls > 0

    def on_data_available(self, callback) -> None:
        self.data_callback = callback

    def on_stop(self, callback) -> None:
        self.stop_callback = callback

    def on_error(self, callback) -> None:
        self.error_callback = callback

    def start(self) -> None:
        self.started = True

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.stop_calls += 1
        if self.stop_error is not None:
            raise self.stop_error
        loop = asyncio.get_running_loop()
        for chunk in self.pending_chunks:
            loop.call_soon(self.data_callback, chunk)
        self.pending_chunks = []
        loop.call_soon(self.stop_callback)

    def release(self) -> None:
        self.release_calls += 1

    def emit(self, chunk: bytes) -> None:
        self.data_callback(chunk)

    def fail(self, error: Exception) -> None:
        self.error_callback(error)


class FakeDevice(AudioDevice):
    """Hands out FakeHandles, or raises ``error`` when set."""

    def __init__(self):
        self.handles: List[FakeHandle] = []
        self.error: Optional[Exception] = None
        self.constraints = None

    @property
    def last_handle(self) -> FakeHandle:
        return self.handles[-1]

    async def acquire(self, constraints):
        self.constraints = constraints
        if self.error is not None:
            raise self.error
        handle = FakeHandle()
        self.handles.append(handle)
        return handle


class FakeTranscriber(AbstractTranscriptionBackend):
    """Returns queued responses; optionally blocks until ``gate`` is set."""

    def __init__(self, *responses: TranscriptionResponse):
        super().__init__("en")
        self.responses = list(responses) or [TranscriptionResponse.ok("hello world")]
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None

    async def transcribe(self, storage_locator: str) -> TranscriptionResponse:
        self.calls.append(storage_locator)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class FakeSummarizer(AbstractSummarizationEngine):
    """Returns ``result`` or raises ``error``."""

    def __init__(self, result: str = "## Summary\n- point"):
        self.result = result
        self.error: Optional[Exception] = None
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def summarize(self, text: str) -> str:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing (1024 samples of a 440 Hz sine)."""
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t)
    return (wave_data * 32767).astype(np.int16).tobytes()


@pytest.fixture
def sample_audio_file(temp_data_dir, sample_audio_chunk):
    """Create a sample WAV file for testing."""
    file_path = Path(temp_data_dir) / "test_audio.wav"
    with wave.open(str(file_path), 'wb') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(16000)
        for _ in range(10):
            wf.writeframes(sample_audio_chunk)
    return str(file_path)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def publisher():
    return SessionEventPublisher()


@pytest.fixture
def store(publisher):
    return SessionStateStore(publisher)


@pytest.fixture
def capture_engine(fake_device, publisher, fake_clock):
    return AudioCaptureEngine(fake_device, publisher, clock=fake_clock)


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def fake_summarizer():
    return FakeSummarizer()


@pytest.fixture
def failing_summarizer():
    summarizer = FakeSummarizer()
    summarizer.error = SummarizationError(SummarizationErrorKind.API_ERROR, "ChatGPT API error: 500 - boom")
    return summarizer


class EventRecorder:
    """Collects published events per topic."""

    def __init__(self, publisher: SessionEventPublisher, *topics: str):
        self.events = {topic: [] for topic in topics}
        self._listeners = []
        for topic in topics:
            listener = _TopicListener(self.events[topic])
            self._listeners.append(listener)
            publisher.subscribe(listener.on_event, topic)

    def __getitem__(self, topic: str) -> list:
        return self.events[topic]


class _TopicListener:
    def __init__(self, sink: list):
        self.sink = sink

    def on_event(self, event) -> None:
        self.sink.append(event)


@pytest.fixture
def event_recorder(publisher):
    """Factory: ``event_recorder("capture_state", ...)`` records events on those topics."""
    def make(*topics: str) -> EventRecorder:
        return EventRecorder(publisher, *topics)
    return make

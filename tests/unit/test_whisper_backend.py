"""Unit tests for WhisperTranscriptionBackend."""

import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest

from scribeflow.models.errors import TranscriptionErrorKind
from scribeflow.transcription.whisper_backend import WhisperTranscriptionBackend


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def backend(sleep):
    return WhisperTranscriptionBackend(api_key="sk-test", language="de", sleep=sleep)


def error_body(message):
    return json.dumps({"error": {"message": message}})


@pytest.mark.unit
class TestWhisperPreflight:
    """Checks done before anything is uploaded."""

    def test_missing_api_key(self, sample_audio_file):
        backend = WhisperTranscriptionBackend(api_key=None)

        response = asyncio.run(backend.transcribe(sample_audio_file))

        assert response.success is False
        assert response.error_kind is TranscriptionErrorKind.API_KEY_NOT_CONFIGURED
        assert response.retryable is False

    def test_missing_file(self, backend, temp_data_dir):
        backend._call_api = AsyncMock()

        response = asyncio.run(backend.transcribe(f"{temp_data_dir}/missing.webm"))

        assert response.error_kind is TranscriptionErrorKind.FILE_NOT_FOUND
        assert "missing.webm" in response.error_message
        backend._call_api.assert_not_awaited()

    def test_uploads_file_contents(self, backend, sample_audio_file):
        backend._call_api = AsyncMock(return_value=(200, json.dumps({"text": " Hallo Welt "})))

        response = asyncio.run(backend.transcribe(sample_audio_file))

        assert response.success is True
        assert response.text == "Hallo Welt"
        file_data, file_name = backend._call_api.await_args.args
        with open(sample_audio_file, 'rb') as f:
            assert file_data == f.read()
        assert file_name == "test_audio.wav"


@pytest.mark.unit
class TestWhisperRetries:
    """Exponential backoff for transient failures."""

    def test_retries_transient_failures(self, backend, sleep, sample_audio_file):
        backend._call_api = AsyncMock(side_effect=[
            (503, "unavailable"),
            aiohttp.ClientConnectionError("reset"),
            (200, json.dumps({"text": "finally"})),
        ])

        response = asyncio.run(backend.transcribe(sample_audio_file))

        assert response.success is True
        assert response.text == "finally"
        assert backend._call_api.await_count == 3
        assert sleep.delays == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self, backend, sleep, sample_audio_file):
        backend._call_api = AsyncMock(return_value=(429, error_body("slow down")))

        response = asyncio.run(backend.transcribe(sample_audio_file))

        assert response.error_kind is TranscriptionErrorKind.RATE_LIMIT_EXCEEDED
        assert response.retryable is True
        assert backend._call_api.await_count == 3
        assert sleep.delays == [1.0, 2.0]

    def test_permanent_failure_is_not_retried(self, backend, sleep, sample_audio_file):
        backend._call_api = AsyncMock(return_value=(401, error_body("bad key")))

        response = asyncio.run(backend.transcribe(sample_audio_file))

        assert response.error_kind is TranscriptionErrorKind.INVALID_API_KEY
        assert backend._call_api.await_count == 1
        assert sleep.delays == []

    def test_timeout_maps_to_network_error(self, sleep, sample_audio_file):
        backend = WhisperTranscriptionBackend(api_key="sk-test", max_attempts=1, sleep=sleep)
        backend._call_api = AsyncMock(side_effect=asyncio.TimeoutError())

        response = asyncio.run(backend.transcribe(sample_audio_file))

        assert response.error_kind is TranscriptionErrorKind.NETWORK_ERROR
        assert response.retryable is True


@pytest.mark.unit
class TestWhisperResponseMapping:
    """HTTP status and body to TranscriptionResponse."""

    @pytest.mark.parametrize("status, body, kind", [
        (401, error_body("Incorrect API key"), TranscriptionErrorKind.INVALID_API_KEY),
        (429, error_body("Rate limit"), TranscriptionErrorKind.RATE_LIMIT_EXCEEDED),
        (400, error_body("Invalid file format."), TranscriptionErrorKind.INVALID_AUDIO_FORMAT),
        (400, error_body("Audio file is too short"), TranscriptionErrorKind.API_ERROR),
        (400, error_body("could not decode audio"), TranscriptionErrorKind.INVALID_AUDIO_FORMAT),
        (400, "not json", TranscriptionErrorKind.INVALID_AUDIO_FORMAT),
        (500, "oops", TranscriptionErrorKind.NETWORK_ERROR),
        (502, error_body("bad gateway"), TranscriptionErrorKind.NETWORK_ERROR),
        (404, error_body("no such model"), TranscriptionErrorKind.API_ERROR),
        (200, "{broken", TranscriptionErrorKind.API_ERROR),
        (200, json.dumps({"text": "   "}), TranscriptionErrorKind.UNKNOWN),
    ])
    def test_error_statuses(self, status, body, kind):
        response = WhisperTranscriptionBackend.interpret_response(status, body)

        assert response.success is False
        assert response.error_kind is kind
        assert response.retryable is kind.retryable

    def test_api_error_carries_message(self):
        response = WhisperTranscriptionBackend.interpret_response(404, error_body("no such model"))

        assert "no such model" in response.error_message

    def test_success(self):
        response = WhisperTranscriptionBackend.interpret_response(200, json.dumps({"text": "hello"}))

        assert response.success is True
        assert response.text == "hello"

"""OpenAI Whisper transcription backend."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Callable, Awaitable

import aiohttp

from .base import AbstractTranscriptionBackend
from ..models.errors import TranscriptionErrorKind
from ..models.processing import TranscriptionResponse

logger = logging.getLogger(__name__)

WHISPER_API_URL = "https://api.openai.com/v1/audio/transcriptions"
MAX_RETRY_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0

_CONTENT_TYPES = {
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".mp4": "audio/mp4",
    ".wav": "audio/wav",
}


class WhisperTranscriptionBackend(AbstractTranscriptionBackend):
    """Uploads a recording file to the Whisper API.

    Transient failures (network errors, 5xx, rate limiting) are retried
    with exponential backoff; everything else is returned immediately.
    """

    def __init__(self,
                 api_key: Optional[str],
                 language: str = "en",
                 model: str = "whisper-1",
                 max_attempts: int = MAX_RETRY_ATTEMPTS,
                 base_delay: float = BASE_DELAY_SECONDS,
                 timeout_seconds: float = 120.0,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """Initialize Whisper backend.

        Args:
            api_key: OpenAI API key
            language: ISO 639-1 language code
            model: Whisper model name
            max_attempts: Attempts for transient failures
            base_delay: First retry delay in seconds, doubled per attempt
            timeout_seconds: Total timeout of one request
            sleep: Coroutine used for backoff delays
        """
        super().__init__(language)
        self.api_key = api_key
        self.model = model
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._sleep = sleep
        self.service_name = "OpenAI Whisper"

        logger.info(f"WhisperTranscriptionBackend initialized with model: {model}, language: {language}")

    async def transcribe(self, storage_locator: str) -> TranscriptionResponse:
        if not self.api_key:
            return TranscriptionResponse.failure(TranscriptionErrorKind.API_KEY_NOT_CONFIGURED)

        path = Path(storage_locator)
        if not path.exists():
            return TranscriptionResponse.failure(TranscriptionErrorKind.FILE_NOT_FOUND, storage_locator)
        try:
            file_data = await asyncio.get_running_loop().run_in_executor(None, path.read_bytes)
        except OSError as e:
            logger.error(f"Failed to read audio file {path}: {e}")
            return TranscriptionResponse.failure(TranscriptionErrorKind.FILE_READ_ERROR, str(e))

        response = TranscriptionResponse.failure(TranscriptionErrorKind.UNKNOWN, "No attempts made")
        for attempt in range(self.max_attempts):
            response = await self._attempt(file_data, path.name)
            if response.success or not response.retryable:
                return response

            if attempt < self.max_attempts - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.info(f"Transcription attempt {attempt + 1} failed, retrying in {delay:.1f}s: "
                            f"{response.error_kind.value}")
                await self._sleep(delay)

        logger.warning(f"Transcription failed after {self.max_attempts} attempts: {response.error_message}")
        return response

    async def _attempt(self, file_data: bytes, file_name: str) -> TranscriptionResponse:
        try:
            status, body = await self._call_api(file_data, file_name)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Whisper request failed: {e!r}")
            return TranscriptionResponse.failure(TranscriptionErrorKind.NETWORK_ERROR, str(e))
        return self.interpret_response(status, body)

    async def _call_api(self, file_data: bytes, file_name: str) -> Tuple[int, str]:
        """POST the recording as multipart form data; returns (status, body text)."""
        form = aiohttp.FormData()
        form.add_field("file", file_data, filename=file_name,
                       content_type=_CONTENT_TYPES.get(Path(file_name).suffix, "audio/webm"))
        form.add_field("model", self.model)
        form.add_field("language", self.language)

        headers = {"Authorization": f"Bearer {self.api_key}"}
        logger.debug(f"Uploading {len(file_data)} bytes to {self.service_name}")
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(WHISPER_API_URL, headers=headers, data=form) as response:
                return response.status, await response.text()

    @staticmethod
    def interpret_response(status: int, body: str) -> TranscriptionResponse:
        """Map an HTTP status and body onto a TranscriptionResponse."""
        if status == 200:
            try:
                text = json.loads(body)["text"]
            except (ValueError, KeyError, TypeError) as e:
                return TranscriptionResponse.failure(TranscriptionErrorKind.API_ERROR,
                                                     f"Failed to parse response: {e}")
            text = (text or "").strip()
            if not text:
                return TranscriptionResponse.failure(TranscriptionErrorKind.UNKNOWN, "Empty transcription")
            return TranscriptionResponse.ok(text)

        if status == 401:
            return TranscriptionResponse.failure(TranscriptionErrorKind.INVALID_API_KEY)
        if status == 429:
            return TranscriptionResponse.failure(TranscriptionErrorKind.RATE_LIMIT_EXCEEDED)

        message = _error_message(body)
        if status == 400:
            if message is None:
                return TranscriptionResponse.failure(TranscriptionErrorKind.INVALID_AUDIO_FORMAT,
                                                     "Invalid audio file")
            if "audio" in message or "format" in message:
                return TranscriptionResponse.failure(TranscriptionErrorKind.INVALID_AUDIO_FORMAT, message)
            return TranscriptionResponse.failure(TranscriptionErrorKind.API_ERROR, message)

        if 500 <= status < 600:
            return TranscriptionResponse.failure(TranscriptionErrorKind.NETWORK_ERROR,
                                                 f"Server error {status}: {message or body}")
        return TranscriptionResponse.failure(TranscriptionErrorKind.API_ERROR,
                                             f"HTTP {status}: {message or body}")


def _error_message(body: str) -> Optional[str]:
    """Extract ``error.message`` from an OpenAI error body."""
    try:
        return json.loads(body)["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return None

"""Abstract base class for transcription backends."""

from abc import ABC, abstractmethod

from ..models.processing import TranscriptionResponse


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    def __init__(self, language: str = "en"):
        """Initialize backend with language preference (ISO 639-1 code)."""
        self.language = language

    @abstractmethod
    async def transcribe(self, storage_locator: str) -> TranscriptionResponse:
        """Transcribe a persisted recording.

        Args:
            storage_locator: Locator returned by the recording storage

        Returns:
            TranscriptionResponse; failures are reported in the response,
            not raised
        """
        pass

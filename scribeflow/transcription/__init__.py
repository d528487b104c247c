"""Speech-to-text backends for Scribeflow."""

from .base import AbstractTranscriptionBackend
from .whisper_backend import WhisperTranscriptionBackend

__all__ = ["AbstractTranscriptionBackend", "WhisperTranscriptionBackend"]

"""Durable storage for recordings and transcription history."""

from .file_manager import RecordingStorage
from .history_store import JsonHistoryStore

__all__ = ["RecordingStorage", "JsonHistoryStore"]

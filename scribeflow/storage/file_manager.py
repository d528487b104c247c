"""Recording storage: writes captured audio to the data directory."""

import asyncio
import io
import logging
import time
import uuid
import wave
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from ..models.errors import StorageError, StorageErrorKind

logger = logging.getLogger(__name__)

RECORDING_PREFIX = "recording-"

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mp4": "mp4",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/l16": "wav",
}
AUDIO_EXTENSIONS = frozenset(_EXTENSIONS.values())


def parse_mime_type(mime_type: str) -> Tuple[str, Dict[str, str]]:
    """Split 'audio/L16;rate=16000;channels=1' into base type and parameters."""
    parts = [p.strip() for p in (mime_type or "").split(";") if p.strip()]
    if not parts:
        return "", {}
    params = {}
    for part in parts[1:]:
        if "=" in part:
            key, value = part.split("=", 1)
            params[key.strip().lower()] = value.strip()
    return parts[0].lower(), params


def extension_for(mime_type: str) -> str:
    """File extension for a MIME type; unknown types are stored as webm."""
    base, _ = parse_mime_type(mime_type)
    return _EXTENSIONS.get(base, "webm")


def generate_recording_filename(extension: str = "webm") -> str:
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return f"{RECORDING_PREFIX}{timestamp}-{uuid.uuid4()}.{extension}"


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int, sample_width: int = 2) -> bytes:
    """Wrap raw little-endian PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


class RecordingStorage:
    """Manages recording files under ``<data_dir>/recordings``."""

    def __init__(self, data_dir: Optional[str]):
        """Initialize recording storage.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir) if data_dir else None
        self.recordings_dir = self.data_dir / "recordings" if self.data_dir else None
        logger.info(f"RecordingStorage initialized with data_dir: {self.data_dir}")

    def ensure_storage_ready(self) -> str:
        """Ensure the recordings directory exists.

        Returns:
            Path of the recordings directory

        Raises:
            StorageError: No data directory configured, or it cannot be created
        """
        if self.recordings_dir is None:
            raise StorageError(StorageErrorKind.UNSUPPORTED_ENVIRONMENT,
                               "No data directory configured for recordings")
        try:
            self.recordings_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(StorageErrorKind.DIRECTORY_CREATION_FAILED,
                               f"Failed to create recordings directory: {e}") from e
        logger.debug(f"Ensured directory exists: {self.recordings_dir}")
        return str(self.recordings_dir)

    async def save(self, payload: bytes, mime_type: str) -> str:
        """Save a recording and return its storage locator (the file path)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.save_sync, payload, mime_type)

    async def delete(self, storage_locator: str) -> None:
        """Delete a recording; a missing file counts as deleted."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.delete_sync, storage_locator)

    def save_sync(self, payload: bytes, mime_type: str) -> str:
        directory = Path(self.ensure_storage_ready())
        base, params = parse_mime_type(mime_type)
        data = payload
        if base == "audio/l16":
            try:
                data = pcm_to_wav(payload, int(params.get("rate", 16000)), int(params.get("channels", 1)))
            except (ValueError, wave.Error) as e:
                raise StorageError(StorageErrorKind.UNKNOWN, f"Failed to encode recording: {e}") from e

        file_path = directory / generate_recording_filename(extension_for(mime_type))
        try:
            with open(file_path, 'wb') as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Error saving audio file: {e}")
            raise StorageError(StorageErrorKind.FILE_WRITE_FAILED,
                               f"Failed to write recording file: {e}") from e

        logger.info(f"Audio file saved: {file_path} ({len(data)} bytes)")
        return str(file_path)

    def delete_sync(self, storage_locator: str) -> None:
        path = Path(storage_locator)
        if not path.exists():
            logger.debug(f"Recording already gone: {path}")
            return
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(StorageErrorKind.FILE_DELETE_FAILED,
                               f"Failed to delete recording file: {e}") from e
        logger.info(f"Deleted recording: {path}")

    def cleanup_old_recordings(self, max_age_hours: int = 24) -> int:
        """Delete recordings older than ``max_age_hours``.

        Returns:
            Number of recordings removed
        """
        if self.recordings_dir is None or not self.recordings_dir.exists():
            return 0

        cutoff_time = time.time() - max_age_hours * 3600
        cleaned_count = 0
        for path in self.recordings_dir.iterdir():
            if not path.is_file() or path.suffix.lstrip('.') not in AUDIO_EXTENSIONS:
                continue
            try:
                if path.stat().st_mtime < cutoff_time:
                    path.unlink()
                    cleaned_count += 1
                    logger.info(f"Cleaned up old recording: {path}")
            except OSError as e:
                logger.warning(f"Could not remove old recording {path}: {e}")

        logger.info(f"Cleaned up {cleaned_count} old recordings")
        return cleaned_count

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage usage statistics."""
        total_size = 0
        recordings = 0
        if self.recordings_dir is not None and self.recordings_dir.exists():
            for path in self.recordings_dir.iterdir():
                if path.is_file() and path.suffix.lstrip('.') in AUDIO_EXTENSIONS:
                    recordings += 1
                    total_size += path.stat().st_size

        return {
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "recordings": recordings,
            "data_directory": str(self.data_dir) if self.data_dir else None,
        }

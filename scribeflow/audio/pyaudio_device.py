"""PyAudio microphone device delivering 16-bit PCM chunks to the event loop."""

import asyncio
import logging
from threading import Thread, Event
from typing import Optional, Dict, Any, Callable

import numpy as np

try:
    import pyaudio
except ImportError:  # installed through the "audio" extra
    pyaudio = None

from .device import AudioDevice, AudioDeviceHandle
from ..models.errors import CaptureError, CaptureErrorKind

logger = logging.getLogger(__name__)


def pcm_peak_level(chunk: bytes) -> float:
    """Peak absolute level of a 16-bit PCM chunk, normalized to [0.0, 1.0]."""
    samples = np.frombuffer(chunk, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples.astype(np.int32)).max()) / 32768.0


class PyAudioDeviceHandle(AudioDeviceHandle):
    """Continuous PyAudio capture in a background thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop, pyaudio_instance, stream,
                 sample_rate: int, channels: int, chunk_size: int):
        self._loop = loop
        self._pyaudio = pyaudio_instance
        self._stream = stream
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size

        self._on_data: Optional[Callable[[bytes], None]] = None
        self._on_stop: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[CaptureError], None]] = None

        self._thread: Optional[Thread] = None
        self._stop_event = Event()
        self._running = Event()  # cleared while paused
        self._peak_level = 0.0
        self._released = False

    @property
    def mime_type(self) -> str:
        return f"audio/L16;rate={self.sample_rate};channels={self.channels}"

    @property
    def peak_level(self) -> float:
        return self._peak_level

    def on_data_available(self, callback: Callable[[bytes], None]) -> None:
        self._on_data = callback

    def on_stop(self, callback: Callable[[], None]) -> None:
        self._on_stop = callback

    def on_error(self, callback: Callable[[CaptureError], None]) -> None:
        self._on_error = callback

    def start(self) -> None:
        self._stop_event.clear()
        self._running.set()
        self._stream.start_stream()
        self._thread = Thread(target=self._record_continuously, daemon=True)
        self._thread.name = "AudioCaptureThread"
        self._thread.start()

    def pause(self) -> None:
        self._running.clear()
        self._stream.stop_stream()

    def resume(self) -> None:
        self._stream.start_stream()
        self._running.set()

    def stop(self) -> None:
        self._stop_event.set()
        # Wake a paused thread so it can flush and finish
        self._running.set()

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._stop_event.set()
        self._running.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
            if self._thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")
        try:
            self._stream.stop_stream()
            self._stream.close()
        finally:
            self._pyaudio.terminate()
        logger.info("PyAudio device released")

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        try:
            while not self._stop_event.is_set():
                self._running.wait()
                if self._stop_event.is_set():
                    break
                chunk = self._stream.read(self.chunk_size, exception_on_overflow=False)
                self._peak_level = pcm_peak_level(chunk)
                self._deliver(self._on_data, chunk)
        except Exception as e:
            if not self._released:
                logger.error(f"Error reading audio stream: {e}")
                self._deliver(self._on_error, CaptureError(CaptureErrorKind.RECORDER_ERROR, f"Recording error: {e}"))
            return
        self._deliver(self._on_stop)

    def _deliver(self, callback: Optional[Callable], *args) -> None:
        if callback is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)


class PyAudioDevice(AudioDevice):
    """Opens the default input device through PyAudio."""

    def __init__(self, sample_rate: int = 16000, chunk_size: int = 1024, channels: int = 1):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels

    async def acquire(self, constraints: Dict[str, Any]) -> PyAudioDeviceHandle:
        if pyaudio is None:
            raise CaptureError(CaptureErrorKind.NOT_SUPPORTED,
                               "PyAudio is not installed; install scribeflow[audio] to record.")
        loop = asyncio.get_running_loop()
        # PortAudio ignores browser-style processing constraints
        logger.debug(f"Acquiring PyAudio input device (constraints: {constraints})")
        pyaudio_instance, stream = await loop.run_in_executor(None, self._open_stream)
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, {self.chunk_size} samples/chunk")
        return PyAudioDeviceHandle(loop, pyaudio_instance, stream,
                                   self.sample_rate, self.channels, self.chunk_size)

    def _open_stream(self):
        pyaudio_instance = pyaudio.PyAudio()
        try:
            pyaudio_instance.get_default_input_device_info()
        except (IOError, OSError) as e:
            pyaudio_instance.terminate()
            raise CaptureError(CaptureErrorKind.DEVICE_NOT_FOUND) from e

        try:
            stream = pyaudio_instance.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                start=False,
            )
        except (IOError, OSError) as e:
            pyaudio_instance.terminate()
            raise CaptureError(CaptureErrorKind.RECORDER_ERROR, f"Failed to open audio stream: {e}") from e
        return pyaudio_instance, stream

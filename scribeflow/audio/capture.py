"""Audio capture engine with pause-aware duration tracking and event publishing."""

import asyncio
import functools
import logging
import time
from typing import Optional, Dict, Any, List, Callable

from .device import AudioDevice, AudioDeviceHandle
from ..models.capture import CaptureState, AudioRecordingResult, AudioStats
from ..models.errors import CaptureError, CaptureErrorKind
from ..models.events import CaptureStateEvent, CaptureErrorEvent
from ..services.event_publisher import SessionEventPublisher

logger = logging.getLogger(__name__)

DEFAULT_CONSTRAINTS: Dict[str, Any] = {
    "echo_cancellation": True,
    "noise_suppression": True,
    "auto_gain_control": True,
}


class AudioCaptureEngine:
    """Owns the recording device and the capture state machine.

    idle --start()--> capturing --pause()--> paused --resume()--> capturing
    capturing|paused --stop()--> stopped; reset() returns to idle from anywhere.

    Every transition is published on the ``capture_state`` topic. Device
    failures release the device before the error is reported.
    """

    def __init__(
        self,
        device: AudioDevice,
        publisher: SessionEventPublisher,
        constraints: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the capture engine.

        Args:
            device: Recording device factory
            publisher: Publisher for capture events
            constraints: Device constraints passed to ``acquire``
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.device = device
        self.publisher = publisher
        self.constraints = dict(constraints or DEFAULT_CONSTRAINTS)
        self._clock = clock

        self.state = CaptureState.IDLE
        self.last_error: Optional[CaptureError] = None
        self.result: Optional[AudioRecordingResult] = None

        self._handle: Optional[AudioDeviceHandle] = None
        self._chunks: List[bytes] = []
        self._total_chunks = 0
        self._total_bytes = 0
        self._last_peak = 0.0
        self._acquiring = False
        self._stopping: Optional[asyncio.Future] = None

        # Timing (clock seconds)
        self._start_time: Optional[float] = None
        self._stop_time: Optional[float] = None
        self._pause_start: Optional[float] = None
        self._paused_total = 0.0

    @property
    def is_active(self) -> bool:
        return self.state in (CaptureState.CAPTURING, CaptureState.PAUSED)

    @property
    def holds_device(self) -> bool:
        return self._handle is not None

    def active_seconds(self) -> float:
        """Time spent capturing so far, excluding paused intervals."""
        if self._start_time is None:
            return 0.0
        if self._stop_time is not None:
            now = self._stop_time
        elif self._pause_start is not None:
            now = self._pause_start
        else:
            now = self._clock()
        return max(0.0, now - self._start_time - self._paused_total)

    async def start(self) -> None:
        """Start a fresh capture, or resume a paused one.

        Raises:
            CaptureError: Device acquisition or start failed; state is idle
        """
        if self.state is CaptureState.PAUSED:
            self.resume()
            return

        if self.state is CaptureState.CAPTURING or self._acquiring:
            logger.warning("Capture already in progress")
            return

        if self.state is CaptureState.STOPPED:
            self.reset()

        self.last_error = None
        self._acquiring = True
        logger.info("Acquiring recording device")
        try:
            handle = await self.device.acquire(self.constraints)
        except CaptureError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = CaptureError(CaptureErrorKind.UNKNOWN, f"Recording error: {e}")
            self._fail(error)
            raise error from e
        finally:
            self._acquiring = False

        self._handle = handle
        self._chunks = []
        self._total_chunks = 0
        self._total_bytes = 0
        handle.on_data_available(functools.partial(self._on_chunk, handle))
        handle.on_stop(functools.partial(self._on_device_stopped, handle))
        handle.on_error(functools.partial(self._on_device_error, handle))

        try:
            handle.start()
        except CaptureError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = CaptureError(CaptureErrorKind.RECORDER_ERROR, f"Failed to start recorder: {e}")
            self._fail(error)
            raise error from e

        self._start_time = self._clock()
        self._stop_time = None
        self._pause_start = None
        self._paused_total = 0.0
        logger.info(f"Capture started ({handle.mime_type})")
        self._transition(CaptureState.CAPTURING)

    def pause(self) -> bool:
        """Pause capture, keeping the device handle for a later resume."""
        if self.state is not CaptureState.CAPTURING:
            logger.warning(f"Cannot pause from state {self.state.value}")
            return False

        self._handle.pause()
        self._pause_start = self._clock()
        logger.info(f"Capture paused at {self.active_seconds():.1f}s")
        self._transition(CaptureState.PAUSED)
        return True

    def resume(self) -> bool:
        """Resume a paused capture."""
        if self.state is not CaptureState.PAUSED:
            logger.warning(f"Cannot resume from state {self.state.value}")
            return False

        self._paused_total += self._clock() - self._pause_start
        self._pause_start = None
        self._handle.resume()
        logger.info("Capture resumed")
        self._transition(CaptureState.CAPTURING)
        return True

    async def stop(self) -> Optional[AudioRecordingResult]:
        """Stop capture and finalize the audio payload.

        Returns:
            The recording result, or None if nothing was stopped by this call
            (not capturing, or another stop is already in flight)

        Raises:
            CaptureError: The device failed while stopping; state is idle
        """
        if self._stopping is not None:
            logger.warning("Stop already in progress")
            await self._stopping
            return None

        if not self.is_active:
            logger.warning(f"Cannot stop from state {self.state.value}")
            return None

        now = self._clock()
        if self._pause_start is not None:
            self._paused_total += now - self._pause_start
            self._pause_start = None
        self._stop_time = now

        stopping = asyncio.get_running_loop().create_future()
        self._stopping = stopping
        try:
            self._handle.stop()
        except CaptureError as e:
            self._stopping = None
            self._fail(e)
            raise
        except Exception as e:
            self._stopping = None
            error = CaptureError(CaptureErrorKind.RECORDER_ERROR, f"Failed to stop recorder: {e}")
            self._fail(error)
            raise error from e

        try:
            return await stopping
        finally:
            if self._stopping is stopping:
                self._stopping = None

    def reset(self) -> None:
        """Release any held device, clear the payload and return to idle."""
        self._release_device()
        self._clear_buffers()
        self.result = None
        self.last_error = None
        self._resolve_stopping(None)
        self._transition(CaptureState.IDLE)

    def stats(self) -> AudioStats:
        """Get current capture statistics."""
        peak = self._handle.peak_level if self._handle else self._last_peak
        return AudioStats(
            is_capturing=self.state is CaptureState.CAPTURING,
            duration_seconds=self.active_seconds(),
            total_chunks=self._total_chunks,
            total_bytes=self._total_bytes,
            peak_level=peak,
        )

    def _on_chunk(self, handle: AudioDeviceHandle, chunk: bytes) -> None:
        if handle is not self._handle:
            logger.debug("Dropping chunk from a released device")
            return
        if not chunk:
            return
        self._chunks.append(chunk)
        self._total_chunks += 1
        self._total_bytes += len(chunk)
        self._last_peak = handle.peak_level

    def _on_device_stopped(self, handle: AudioDeviceHandle) -> None:
        if handle is not self._handle:
            logger.debug("Ignoring stop from a released device")
            return

        if self._stop_time is None:
            # Device ended on its own
            now = self._clock()
            if self._pause_start is not None:
                self._paused_total += now - self._pause_start
                self._pause_start = None
            self._stop_time = now

        payload = b''.join(self._chunks)
        duration = self.active_seconds()
        self.result = AudioRecordingResult(
            payload=payload,
            mime_type=handle.mime_type,
            duration_seconds=duration,
        )
        self._release_device()
        logger.info(f"Capture stopped: {len(payload)} bytes, {duration:.1f}s "
                    f"({self._paused_total:.1f}s paused)")
        self._transition(CaptureState.STOPPED, self.result)
        self._resolve_stopping(self.result)

    def _on_device_error(self, handle: AudioDeviceHandle, error: Exception) -> None:
        if handle is not self._handle:
            logger.debug(f"Ignoring error from a released device: {error}")
            return
        if not isinstance(error, CaptureError):
            error = CaptureError(CaptureErrorKind.RECORDER_ERROR, f"Recording error: {error}")
        self._fail(error)

    def _fail(self, error: CaptureError) -> None:
        """Release the device, return to idle, then report the error."""
        self._release_device()
        self._clear_buffers()
        self.result = None
        self.last_error = error
        logger.error(f"Capture error ({error.kind.value}): {error.message}")
        self._transition(CaptureState.IDLE)
        self._resolve_stopping(None)
        self.publisher.publish_capture_error(CaptureErrorEvent(error=error))

    def _release_device(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.release()
            logger.debug("Recording device released")
        except Exception as e:
            logger.warning(f"Error releasing recording device: {e}")

    def _clear_buffers(self) -> None:
        self._chunks = []
        self._total_chunks = 0
        self._total_bytes = 0
        self._start_time = None
        self._stop_time = None
        self._pause_start = None
        self._paused_total = 0.0

    def _resolve_stopping(self, result: Optional[AudioRecordingResult]) -> None:
        if self._stopping is not None and not self._stopping.done():
            self._stopping.set_result(result)

    def _transition(self, new_state: CaptureState, result: Optional[AudioRecordingResult] = None) -> None:
        previous = self.state
        if previous is new_state:
            return
        self.state = new_state
        elapsed = int(result.duration_seconds) if result else int(self.active_seconds())
        self.publisher.publish_capture_state(CaptureStateEvent(
            previous=previous,
            current=new_state,
            elapsed_seconds=elapsed,
            result=result,
        ))

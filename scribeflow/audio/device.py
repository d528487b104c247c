"""Abstract recording device contract consumed by the capture engine."""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Any

from ..models.errors import CaptureError


class AudioDeviceHandle(ABC):
    """An acquired recording device.

    Callbacks registered here must be invoked on the event loop thread.
    After ``stop()`` the handle delivers any buffered audio through the
    data callback and then calls the stop callback exactly once.
    """

    @property
    @abstractmethod
    def mime_type(self) -> str:
        """MIME type of the bytes delivered to the data callback."""

    @property
    def peak_level(self) -> float:
        """Peak level of the most recent chunk in [0.0, 1.0]."""
        return 0.0

    @abstractmethod
    def on_data_available(self, callback: Callable[[bytes], None]) -> None:
        pass

    @abstractmethod
    def on_stop(self, callback: Callable[[], None]) -> None:
        pass

    @abstractmethod
    def on_error(self, callback: Callable[[CaptureError], None]) -> None:
        pass

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def resume(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Request stop; completion is signalled through the stop callback."""

    @abstractmethod
    def release(self) -> None:
        """Release the underlying device. Safe to call more than once."""


class AudioDevice(ABC):
    """Factory for device handles."""

    @abstractmethod
    async def acquire(self, constraints: Dict[str, Any]) -> AudioDeviceHandle:
        """Acquire a recording device.

        Args:
            constraints: Capture constraints (echo cancellation, noise suppression, ...)

        Returns:
            An acquired, not yet started device handle

        Raises:
            CaptureError: permission_denied, device_not_found or not_supported
        """

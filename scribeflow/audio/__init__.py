"""Audio capture for Scribeflow.

The PyAudio device lives in ``scribeflow.audio.pyaudio_device`` and is only
imported by the application entry point.
"""

from .device import AudioDevice, AudioDeviceHandle
from .capture import AudioCaptureEngine
from .duration import DurationTracker

__all__ = ["AudioDevice", "AudioDeviceHandle", "AudioCaptureEngine", "DurationTracker"]

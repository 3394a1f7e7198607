"""
Audio input devices.

The capture session talks to an AudioInputDevice; SoundDeviceMicrophone is
the real implementation on top of sounddevice (PortAudio). Frames arrive on
the PortAudio thread and are queued until the session drains them.
"""

import io
import threading
import wave
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import numpy as np
import structlog

logger = structlog.get_logger(__name__)


class DeviceNotFoundError(Exception):
    """No matching input device."""
    pass


class DeviceUnsupportedError(Exception):
    """Audio capture is not available on this system."""
    pass


class AudioInputDevice(ABC):
    """A microphone that can be opened once, read in chunks and closed."""

    @property
    @abstractmethod
    def mime_type(self) -> str:
        pass

    @abstractmethod
    def open(self) -> None:
        """Acquire the device and begin capturing."""

    @abstractmethod
    def read_chunk(self) -> bytes:
        """Return the raw frames captured since the last read."""

    @abstractmethod
    def flush(self) -> bytes:
        """Stop capturing and return the remaining frames."""

    @abstractmethod
    def close(self) -> None:
        """Release the device."""

    @abstractmethod
    def encode(self, frames: bytes) -> bytes:
        """Wrap raw frames in the container announced by mime_type."""


def _sounddevice():
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise DeviceUnsupportedError("sounddevice is required for recording.") from exc
    return sd


def list_input_devices() -> List[Dict[str, Any]]:
    sd = _sounddevice()
    devices = sd.query_devices()
    return [d for d in devices if d.get("max_input_channels", 0) > 0]


def find_input_device(prefer_name: Optional[str] = None) -> Dict[str, Any]:
    candidates = list_input_devices()
    if not candidates:
        raise DeviceNotFoundError("No input devices found.")
    if prefer_name:
        preferred = [
            d for d in candidates if prefer_name.lower() in d.get("name", "").lower()
        ]
        if preferred:
            return preferred[0]
    return candidates[0]


def classify_device_error(exc: BaseException) -> str:
    """
    Reduce a device acquisition failure to a reason.

    One of permission_denied, device_not_found, unsupported, unknown.
    """
    if isinstance(exc, PermissionError):
        return "permission_denied"
    if isinstance(exc, DeviceNotFoundError):
        return "device_not_found"
    if isinstance(exc, DeviceUnsupportedError):
        return "unsupported"

    # PortAudio reports everything as PortAudioError; the text is all we get
    message = str(exc).lower()
    if "permission" in message or "not allowed" in message:
        return "permission_denied"
    if "no input" in message or "invalid device" in message or "device unavailable" in message:
        return "device_not_found"
    if "invalid sample rate" in message or "invalid number of channels" in message:
        return "unsupported"
    return "unknown"


class SoundDeviceMicrophone(AudioInputDevice):
    """16-bit PCM microphone recorded into a WAV container."""

    def __init__(
        self,
        sample_rate_hz: int = 16000,
        channels: int = 1,
        device_name: Optional[str] = None,
    ):
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.device_name = device_name
        self._stream = None
        self._frames: list[np.ndarray] = []
        self._lock = threading.Lock()

    @property
    def mime_type(self) -> str:
        return "audio/wav"

    def open(self) -> None:
        sd = _sounddevice()
        device = find_input_device(self.device_name)

        stream = sd.InputStream(
            samplerate=self.sample_rate_hz,
            channels=self.channels,
            dtype="int16",
            device=device.get("index"),
            callback=self._on_audio,
        )
        try:
            stream.start()
        except Exception:
            stream.close()
            raise
        self._stream = stream

    def _on_audio(self, indata, _frames, _time, status) -> None:
        if status:
            # Overflow and similar flags still deliver usable samples
            logger.warning("microphone_stream_status", status=str(status))
        with self._lock:
            self._frames.append(indata.copy())

    def read_chunk(self) -> bytes:
        with self._lock:
            frames, self._frames = self._frames, []
        if not frames:
            return b""
        data = np.concatenate(frames, axis=0)
        if data.dtype != np.int16:
            data = data.astype(np.int16)
        return data.tobytes()

    def flush(self) -> bytes:
        if self._stream is not None:
            # stop() waits until pending buffers were delivered to the callback
            self._stream.stop()
        return self.read_chunk()

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
        with self._lock:
            self._frames = []

    def encode(self, frames: bytes) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as handle:
            handle.setnchannels(self.channels)
            handle.setsampwidth(2)
            handle.setframerate(self.sample_rate_hz)
            handle.writeframes(frames)
        return buffer.getvalue()

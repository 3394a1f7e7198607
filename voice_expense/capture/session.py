"""
Audio Capture Session

Owns the microphone for one recording. All state changes go through the
transition table in state_machine.py; this class only performs the
effects the table asks for.

CRITICAL: The device is released exactly once per acquisition, on every
exit path from recording (stop, auto-stop, cancel, device failure).
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from voice_expense.capture.devices import AudioInputDevice, classify_device_error
from voice_expense.capture.state_machine import (
    CaptureEvent,
    CaptureState,
    Effect,
    InvalidTransitionError,
    transition,
)
from voice_expense.errors.taxonomy import (
    ClassifiedError,
    ErrorCode,
    TranscriptionError,
    create_error,
)
from voice_expense.models.audio import CapturedAudio

logger = structlog.get_logger(__name__)


MICROPHONE_MESSAGES: dict[str, str] = {
    "permission_denied": "Microphone access denied. Check your system privacy settings.",
    "device_not_found": "No microphone found. Check that the device is connected.",
    "unsupported": "Audio recording is not supported on this system.",
}


class CaptureError(ClassifiedError):
    """A classified capture failure."""

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.reason = reason
        super().__init__(code, message)


class StopRejectedError(CaptureError):
    """Stop was requested before the minimum duration elapsed."""

    def __init__(self, elapsed: float, min_duration: float):
        self.elapsed = elapsed
        self.min_duration = min_duration
        super().__init__(ErrorCode.RECORDING_TOO_SHORT)


class AudioCaptureSession:
    """
    One recording: idle -> recording -> stopped, or cancelled back to idle.

    Args:
        device: The microphone to record from
        clock: Monotonic clock used for elapsed time
        min_duration: Stop is rejected before this much time has elapsed
        max_duration: Recording stops by itself at this length
        tick_interval: Period of the duration counter
        auto_tick: Run the duration counter as a background asyncio task
        on_auto_stop: Called with the buffer when max_duration stops the recording
    """

    def __init__(
        self,
        device: AudioInputDevice,
        clock: Callable[[], float] = time.monotonic,
        min_duration: float = 0.5,
        max_duration: float = 60.0,
        tick_interval: float = 1.0,
        auto_tick: bool = True,
        on_auto_stop: Optional[Callable[[CapturedAudio], None]] = None,
    ):
        if max_duration <= min_duration:
            raise ValueError("max_duration must be greater than min_duration")

        self._device = device
        self._clock = clock
        self._min_duration = min_duration
        self._max_duration = max_duration
        self._tick_interval = tick_interval
        self._auto_tick = auto_tick
        self._on_auto_stop = on_auto_stop

        self._state = CaptureState.IDLE
        self._duration = 0
        self._started_at: Optional[float] = None
        self._stopped_elapsed = 0.0
        self._chunks: list[bytes] = []
        self._timer: Optional[asyncio.Task] = None
        self._device_open = False
        self._acquiring = False
        self._cancel_requested = False
        self._error: Optional[TranscriptionError] = None
        self._last_audio: Optional[CapturedAudio] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == CaptureState.RECORDING

    @property
    def duration(self) -> int:
        """Ticks counted since recording started."""
        return self._duration

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return self._stopped_elapsed
        return self._clock() - self._started_at

    @property
    def error(self) -> Optional[TranscriptionError]:
        return self._error

    @property
    def last_audio(self) -> Optional[CapturedAudio]:
        """Buffer produced by the last stop or auto-stop."""
        return self._last_audio

    # =========================================================================
    # Operations
    # =========================================================================

    async def start(self) -> None:
        """
        Acquire the microphone and begin recording.

        A cancel() issued while the device is opening closes it as soon as
        the open returns; the session then stays idle.

        Raises:
            CaptureError: MICROPHONE_ERROR if the device cannot be acquired;
                the session is left in the error state
            InvalidTransitionError: If the session is not idle
        """
        if self._acquiring:
            raise InvalidTransitionError(self._state, CaptureEvent.START)
        self._apply(CaptureEvent.START)

        self._acquiring = True
        self._cancel_requested = False
        try:
            await asyncio.to_thread(self._device.open)
        except Exception as exc:
            reason = classify_device_error(exc)
            error = CaptureError(
                ErrorCode.MICROPHONE_ERROR,
                MICROPHONE_MESSAGES.get(reason),
                reason=reason,
            )
            self._error = error.error
            self._apply(CaptureEvent.ACQUIRE_FAILED)
            logger.warning("microphone_acquire_failed", reason=reason, error=str(exc))
            raise error from exc
        finally:
            self._acquiring = False

        self._device_open = True
        if self._cancel_requested:
            # Cancelled while the device was opening
            self._cancel_requested = False
            self._release_device()
            logger.info("recording_cancelled", during_acquire=True)
            return

        self._apply(CaptureEvent.ACQUIRED)
        logger.info("recording_started", mime_type=self._device.mime_type)

    def tick(self) -> Optional[CapturedAudio]:
        """
        Advance the duration counter by one.

        Returns the buffer if this tick reached max_duration and stopped
        the recording, None otherwise.
        """
        self._apply(CaptureEvent.TICK)

        try:
            chunk = self._device.read_chunk()
        except Exception as exc:
            self.fail(exc)
            raise CaptureError(ErrorCode.RECORDING_ERROR, str(exc) or None) from exc
        if chunk:
            self._chunks.append(chunk)

        if self.elapsed < self._max_duration:
            return None

        audio = self._finish(CaptureEvent.MAX_DURATION_REACHED)
        logger.info("recording_auto_stopped", duration=self._duration, size_bytes=audio.size_bytes)
        if self._on_auto_stop is not None:
            self._on_auto_stop(audio)
        return audio

    async def stop(self) -> Optional[CapturedAudio]:
        """
        Stop recording and return the finished buffer.

        Returns None (and does nothing) when not recording.

        Raises:
            StopRejectedError: If less than min_duration has elapsed;
                the session keeps recording
            CaptureError: RECORDING_ERROR if the final flush fails
        """
        if self._state != CaptureState.RECORDING:
            self._apply(CaptureEvent.STOP)
            return None

        elapsed = self.elapsed
        if elapsed < self._min_duration:
            raise StopRejectedError(elapsed, self._min_duration)

        audio = self._finish(CaptureEvent.STOP)
        logger.info("recording_stopped", duration=self._duration, size_bytes=audio.size_bytes)
        return audio

    def cancel(self) -> None:
        """Discard the recording and release the device before returning."""
        if self._acquiring:
            self._cancel_requested = True
            return
        was_recording = self._state == CaptureState.RECORDING
        self._apply(CaptureEvent.CANCEL)
        if was_recording:
            self._duration = 0
            self._stopped_elapsed = 0.0
            logger.info("recording_cancelled")

    def fail(self, exc: BaseException) -> TranscriptionError:
        """Record a device-level failure. Releases the device if it is held."""
        error = create_error(ErrorCode.RECORDING_ERROR, str(exc) or None)
        self._error = error
        self._apply(CaptureEvent.DEVICE_FAILURE)
        logger.warning("recording_failed", error=str(exc))
        return error

    def reset(self) -> None:
        """Return to idle after a stop or an error."""
        self._apply(CaptureEvent.RESET)
        self._duration = 0
        self._stopped_elapsed = 0.0
        self._error = None
        self._last_audio = None

    async def __aenter__(self) -> "AudioCaptureSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.is_recording:
            self.cancel()

    # =========================================================================
    # Effects
    # =========================================================================

    def _apply(self, event: CaptureEvent) -> tuple[Effect, ...]:
        previous = self._state
        next_state, effects = transition(self._state, event)
        self._state = next_state
        try:
            for effect in effects:
                self._perform(effect)
        finally:
            if Effect.RELEASE_DEVICE in effects:
                self._release_device()

        if previous != next_state:
            logger.debug(
                "capture_state_changed",
                capture_event=event.value,
                previous=previous.value,
                state=next_state.value,
            )
        return effects

    def _perform(self, effect: Effect) -> None:
        if effect == Effect.ACQUIRE_DEVICE:
            # Performed by start(), which can await the device
            return
        if effect == Effect.START_TIMER:
            self._start_timer()
        elif effect == Effect.STOP_TIMER:
            self._stop_timer()
        elif effect == Effect.INCREMENT_DURATION:
            self._duration += 1
        elif effect == Effect.FLUSH_BUFFER:
            self._flush_buffer()
        elif effect == Effect.DISCARD_BUFFER:
            self._chunks = []
        elif effect == Effect.RELEASE_DEVICE:
            self._release_device()

    def _finish(self, event: CaptureEvent) -> CapturedAudio:
        try:
            self._apply(event)
        except InvalidTransitionError:
            raise
        except Exception as exc:
            self.fail(exc)
            raise CaptureError(ErrorCode.RECORDING_ERROR, str(exc) or None) from exc
        return self._last_audio

    def _start_timer(self) -> None:
        self._started_at = self._clock()
        self._stopped_elapsed = 0.0
        self._duration = 0
        self._chunks = []
        self._error = None
        self._last_audio = None
        if self._auto_tick:
            self._timer = asyncio.get_running_loop().create_task(self._tick_loop())

    def _stop_timer(self) -> None:
        if self._started_at is not None:
            self._stopped_elapsed = self._clock() - self._started_at
            self._started_at = None

        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # The tick loop ends by itself when it is the one stopping
        if timer is not current:
            timer.cancel()

    def _flush_buffer(self) -> None:
        final = self._device.flush()
        if final:
            self._chunks.append(final)
        data = self._device.encode(b"".join(self._chunks))
        self._chunks = []
        self._last_audio = CapturedAudio(
            data=data,
            mime_type=self._device.mime_type,
            duration_seconds=self._duration,
            elapsed_seconds=max(self._stopped_elapsed, 0.0),
        )

    def _release_device(self) -> None:
        if not self._device_open:
            return
        self._device_open = False
        self._device.close()
        logger.debug("microphone_released")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if self._state != CaptureState.RECORDING:
                return
            try:
                self.tick()
            except Exception as exc:
                logger.error("capture_tick_failed", error=str(exc))
                return

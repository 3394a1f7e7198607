"""
Tests for microphone capture.

The microphone is faked and the clock is driven by hand, so every test
runs instantly and the device release count can be checked exactly.
"""

import asyncio

import numpy as np
import pytest

from voice_expense.capture import (
    AudioCaptureSession,
    CaptureError,
    CaptureEvent,
    CaptureState,
    DeviceNotFoundError,
    Effect,
    InvalidTransitionError,
    SoundDeviceMicrophone,
    StopRejectedError,
    classify_device_error,
    transition,
)
from voice_expense.errors.taxonomy import ErrorCode


def make_session(microphone, clock, **kwargs):
    kwargs.setdefault("auto_tick", False)
    return AudioCaptureSession(microphone, clock=clock, **kwargs)


class TestStateMachine:
    """The transition table is the whole lifecycle."""

    def test_start_requests_device(self):
        result = transition(CaptureState.IDLE, CaptureEvent.START)
        assert result.next_state == CaptureState.IDLE
        assert result.effects == (Effect.ACQUIRE_DEVICE,)

    def test_acquired_starts_recording(self):
        result = transition(CaptureState.IDLE, CaptureEvent.ACQUIRED)
        assert result.next_state == CaptureState.RECORDING
        assert Effect.START_TIMER in result.effects

    @pytest.mark.parametrize("event", [CaptureEvent.STOP, CaptureEvent.MAX_DURATION_REACHED])
    def test_finish_flushes_then_releases(self, event):
        result = transition(CaptureState.RECORDING, event)
        assert result.next_state == CaptureState.STOPPED
        assert result.effects.index(Effect.FLUSH_BUFFER) < result.effects.index(Effect.RELEASE_DEVICE)

    def test_cancel_discards_and_releases(self):
        result = transition(CaptureState.RECORDING, CaptureEvent.CANCEL)
        assert result.next_state == CaptureState.IDLE
        assert Effect.DISCARD_BUFFER in result.effects
        assert Effect.RELEASE_DEVICE in result.effects

    def test_device_failure_releases(self):
        result = transition(CaptureState.RECORDING, CaptureEvent.DEVICE_FAILURE)
        assert result.next_state == CaptureState.ERROR
        assert Effect.RELEASE_DEVICE in result.effects

    @pytest.mark.parametrize("state", [CaptureState.IDLE, CaptureState.STOPPED, CaptureState.ERROR])
    def test_stop_outside_recording_is_noop(self, state):
        result = transition(state, CaptureEvent.STOP)
        assert result.next_state == state
        assert result.effects == ()

    def test_start_while_recording_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            transition(CaptureState.RECORDING, CaptureEvent.START)

    def test_tick_outside_recording_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            transition(CaptureState.IDLE, CaptureEvent.TICK)

    def test_every_state_can_fail_or_reset(self):
        for state in CaptureState:
            assert transition(state, CaptureEvent.DEVICE_FAILURE).next_state == CaptureState.ERROR
        for state in (CaptureState.IDLE, CaptureState.STOPPED, CaptureState.ERROR):
            assert transition(state, CaptureEvent.RESET).next_state == CaptureState.IDLE


class TestCaptureSession:
    """Device release happens exactly once, however the recording ends."""

    def test_start_then_stop(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            assert session.is_recording
            clock.advance(2.0)
            session.tick()
            session.tick()
            return await session.stop()

        audio = asyncio.run(scenario())

        assert session.state == CaptureState.STOPPED
        assert microphone.open_calls == 1
        assert microphone.close_calls == 1
        assert audio.duration_seconds == 2
        assert audio.elapsed_seconds == pytest.approx(2.0)
        assert audio.mime_type == "audio/wav"
        assert audio.data == b"RIFF" + b"\x01\x02\x01\x02\x03\x04"

    def test_stop_rejected_before_min_duration(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            clock.advance(0.3)
            with pytest.raises(StopRejectedError) as exc_info:
                await session.stop()
            return exc_info.value

        error = asyncio.run(scenario())

        assert error.code == ErrorCode.RECORDING_TOO_SHORT
        assert session.is_recording
        assert microphone.close_calls == 0

    def test_stop_allowed_at_min_duration(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            clock.advance(0.5)
            return await session.stop()

        audio = asyncio.run(scenario())
        assert audio is not None
        assert session.state == CaptureState.STOPPED
        assert microphone.close_calls == 1

    def test_stop_when_idle_does_nothing(self, microphone, clock):
        session = make_session(microphone, clock)
        assert asyncio.run(session.stop()) is None
        assert session.state == CaptureState.IDLE
        assert microphone.close_calls == 0

    def test_cancel_discards_and_releases(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            clock.advance(3.0)
            session.tick()
            session.cancel()

        asyncio.run(scenario())

        assert session.state == CaptureState.IDLE
        assert session.duration == 0
        assert session.last_audio is None
        assert microphone.close_calls == 1

    def test_cancel_twice_releases_once(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            session.cancel()
            session.cancel()

        asyncio.run(scenario())
        assert microphone.close_calls == 1

    def test_cancel_while_device_is_opening(self, slow_microphone, clock):
        microphone = slow_microphone
        session = make_session(microphone, clock)

        async def scenario():
            starting = asyncio.create_task(session.start())
            await asyncio.to_thread(microphone.opening.wait, 2.0)
            session.cancel()
            microphone.proceed.set()
            await starting

        asyncio.run(scenario())

        assert session.state == CaptureState.IDLE
        assert microphone.open_calls == 1
        assert microphone.close_calls == 1
        assert session.last_audio is None

    def test_auto_stop_at_max_duration(self, microphone, clock):
        stopped = []
        session = make_session(microphone, clock, on_auto_stop=stopped.append)

        async def scenario():
            await session.start()
            for _ in range(59):
                clock.advance(1.0)
                assert session.tick() is None
            clock.advance(1.0)
            return session.tick()

        audio = asyncio.run(scenario())

        assert audio is not None
        assert audio.duration_seconds == 60
        assert stopped == [audio]
        assert session.state == CaptureState.STOPPED
        assert microphone.close_calls == 1

    def test_acquisition_failure(self, microphone, clock):
        microphone.open_error = PermissionError("denied")
        session = make_session(microphone, clock)

        with pytest.raises(CaptureError) as exc_info:
            asyncio.run(session.start())

        assert exc_info.value.code == ErrorCode.MICROPHONE_ERROR
        assert exc_info.value.reason == "permission_denied"
        assert session.state == CaptureState.ERROR
        assert session.error.code == ErrorCode.MICROPHONE_ERROR
        # Never acquired, so nothing to release
        assert microphone.close_calls == 0

    def test_reset_after_error_allows_new_recording(self, microphone, clock):
        microphone.open_error = DeviceNotFoundError("no input device")
        session = make_session(microphone, clock)
        with pytest.raises(CaptureError):
            asyncio.run(session.start())

        microphone.open_error = None
        session.reset()

        asyncio.run(session.start())
        assert session.is_recording
        assert session.error is None

    def test_device_failure_while_recording(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            microphone.read_error = OSError("stream overflow")
            clock.advance(1.0)
            with pytest.raises(CaptureError) as exc_info:
                session.tick()
            return exc_info.value

        error = asyncio.run(scenario())

        assert error.code == ErrorCode.RECORDING_ERROR
        assert session.state == CaptureState.ERROR
        assert microphone.close_calls == 1

    def test_second_start_while_recording_is_rejected(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            await session.start()
            with pytest.raises(InvalidTransitionError):
                await session.start()
            session.cancel()

        asyncio.run(scenario())
        assert microphone.open_calls == 1
        assert microphone.close_calls == 1

    def test_context_manager_cancels_on_exit(self, microphone, clock):
        session = make_session(microphone, clock)

        async def scenario():
            async with session:
                await session.start()

        asyncio.run(scenario())
        assert session.state == CaptureState.IDLE
        assert microphone.close_calls == 1

    def test_auto_tick_stops_recording(self, microphone):
        session = AudioCaptureSession(
            microphone,
            min_duration=0.0,
            max_duration=0.05,
            tick_interval=0.01,
        )

        async def scenario():
            await session.start()
            for _ in range(200):
                if not session.is_recording:
                    break
                await asyncio.sleep(0.01)

        asyncio.run(scenario())
        assert session.state == CaptureState.STOPPED
        assert session.last_audio is not None
        assert microphone.close_calls == 1

    def test_invalid_duration_bounds(self, microphone):
        with pytest.raises(ValueError):
            AudioCaptureSession(microphone, min_duration=5.0, max_duration=5.0)


class TestDeviceErrors:

    @pytest.mark.parametrize("exc, reason", [
        (PermissionError("denied"), "permission_denied"),
        (DeviceNotFoundError("none"), "device_not_found"),
        (OSError("Error opening InputStream: Invalid device"), "device_not_found"),
        (OSError("Invalid sample rate"), "unsupported"),
        (RuntimeError("weird"), "unknown"),
    ])
    def test_classify_device_error(self, exc, reason):
        assert classify_device_error(exc) == reason


class TestSoundDeviceMicrophone:
    """Callback buffering, without opening a real stream."""

    def test_frames_kept_when_stream_reports_status(self):
        microphone = SoundDeviceMicrophone()
        block = np.array([[1], [2], [3]], dtype=np.int16)

        microphone._on_audio(block, 3, None, "input overflow")
        microphone._on_audio(block, 3, None, None)

        assert microphone.read_chunk() == np.concatenate([block, block]).tobytes()
        assert microphone.read_chunk() == b""

"""Microphone capture: state machine, session and devices."""

from voice_expense.capture.devices import (
    AudioInputDevice,
    DeviceNotFoundError,
    DeviceUnsupportedError,
    SoundDeviceMicrophone,
    classify_device_error,
    find_input_device,
    list_input_devices,
)
from voice_expense.capture.session import (
    AudioCaptureSession,
    CaptureError,
    StopRejectedError,
)
from voice_expense.capture.state_machine import (
    CaptureEvent,
    CaptureState,
    Effect,
    InvalidTransitionError,
    Transition,
    transition,
)

__all__ = [
    "AudioCaptureSession",
    "AudioInputDevice",
    "CaptureError",
    "CaptureEvent",
    "CaptureState",
    "DeviceNotFoundError",
    "DeviceUnsupportedError",
    "Effect",
    "InvalidTransitionError",
    "SoundDeviceMicrophone",
    "StopRejectedError",
    "Transition",
    "classify_device_error",
    "find_input_device",
    "list_input_devices",
    "transition",
]

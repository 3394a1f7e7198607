"""
Capture State Machine

DESIGN DECISION: The recording lifecycle is a pure transition table.
transition(state, event) returns the next state plus the effects the
session must perform (acquire/release the device, start/stop the timer,
flush/discard the buffer). No I/O happens here, so every path, including
the ones that must release the microphone, can be checked in isolation.

    idle --START--> idle (+acquire) --ACQUIRED--> recording
    idle --ACQUIRE_FAILED--> error
    recording --TICK--> recording
    recording --STOP / MAX_DURATION_REACHED--> stopped (+flush, release)
    recording --CANCEL--> idle (+discard, release)
    any --DEVICE_FAILURE--> error (+release when leaving recording)
    stopped / error --RESET--> idle
"""

from enum import Enum
from typing import NamedTuple


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    ERROR = "error"


class CaptureEvent(str, Enum):
    START = "start"
    ACQUIRED = "acquired"
    ACQUIRE_FAILED = "acquire_failed"
    TICK = "tick"
    STOP = "stop"
    MAX_DURATION_REACHED = "max_duration_reached"
    CANCEL = "cancel"
    DEVICE_FAILURE = "device_failure"
    RESET = "reset"


class Effect(str, Enum):
    ACQUIRE_DEVICE = "acquire_device"
    RELEASE_DEVICE = "release_device"
    START_TIMER = "start_timer"
    STOP_TIMER = "stop_timer"
    FLUSH_BUFFER = "flush_buffer"
    DISCARD_BUFFER = "discard_buffer"
    INCREMENT_DURATION = "increment_duration"


class Transition(NamedTuple):
    next_state: CaptureState
    effects: tuple[Effect, ...]


class InvalidTransitionError(Exception):
    """The event is not allowed in the current state."""

    def __init__(self, state: CaptureState, event: CaptureEvent):
        self.state = state
        self.event = event
        super().__init__(f"Event '{event.value}' is not allowed in state '{state.value}'")


_FINISH = (Effect.STOP_TIMER, Effect.FLUSH_BUFFER, Effect.RELEASE_DEVICE)
_ABORT = (Effect.STOP_TIMER, Effect.DISCARD_BUFFER, Effect.RELEASE_DEVICE)

S = CaptureState
E = CaptureEvent

TRANSITIONS: dict[tuple[CaptureState, CaptureEvent], Transition] = {
    (S.IDLE, E.START): Transition(S.IDLE, (Effect.ACQUIRE_DEVICE,)),
    (S.IDLE, E.ACQUIRED): Transition(S.RECORDING, (Effect.START_TIMER,)),
    (S.IDLE, E.ACQUIRE_FAILED): Transition(S.ERROR, ()),

    (S.RECORDING, E.TICK): Transition(S.RECORDING, (Effect.INCREMENT_DURATION,)),
    (S.RECORDING, E.STOP): Transition(S.STOPPED, _FINISH),
    (S.RECORDING, E.MAX_DURATION_REACHED): Transition(S.STOPPED, _FINISH),
    (S.RECORDING, E.CANCEL): Transition(S.IDLE, _ABORT),
    (S.RECORDING, E.DEVICE_FAILURE): Transition(S.ERROR, _ABORT),

    # Device failures outside of recording hold no device
    (S.IDLE, E.DEVICE_FAILURE): Transition(S.ERROR, ()),
    (S.STOPPED, E.DEVICE_FAILURE): Transition(S.ERROR, ()),
    (S.ERROR, E.DEVICE_FAILURE): Transition(S.ERROR, ()),

    # Stop and cancel outside of recording are no-ops
    (S.IDLE, E.STOP): Transition(S.IDLE, ()),
    (S.STOPPED, E.STOP): Transition(S.STOPPED, ()),
    (S.ERROR, E.STOP): Transition(S.ERROR, ()),
    (S.IDLE, E.CANCEL): Transition(S.IDLE, ()),
    (S.STOPPED, E.CANCEL): Transition(S.STOPPED, ()),
    (S.ERROR, E.CANCEL): Transition(S.ERROR, ()),

    (S.STOPPED, E.RESET): Transition(S.IDLE, ()),
    (S.ERROR, E.RESET): Transition(S.IDLE, ()),
    (S.IDLE, E.RESET): Transition(S.IDLE, ()),
}

del S, E


def transition(state: CaptureState, event: CaptureEvent) -> Transition:
    """
    Look up the transition for an event.

    Raises:
        InvalidTransitionError: If the event is not allowed in this state
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None

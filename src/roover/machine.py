"""Pure playback state machine.

`PlaybackMachine` holds the lifecycle state of one track and the context that
travels with it. It performs no I/O: `MediumController` feeds it events in
arrival order and observers read `state`/`context` afterwards.

States form a two-level tagged value: an outer tag (`initial`, `loading`,
`ready`, `ended`, `errored`) and, for `ready` only, a sub-tag (`idle`,
`playing`, `paused`). Volume/rate/mute/loop updates are internal transitions
of `ready` and never change the tag.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Literal

from roover.runtime_config import RATE_MAX, clamp_rate, clamp_volume

StateTag = Literal["initial", "loading", "ready", "ended", "errored"]
ReadyTag = Literal["idle", "playing", "paused"]


@dataclass(frozen=True)
class PlaybackState:
    """Active machine state; `sub` is set only while `tag == "ready"`."""

    tag: StateTag = "initial"
    sub: ReadyTag | None = None

    def matches(self, path: str) -> bool:
        """Match a dotted state path such as ``"ready"`` or ``"ready.paused"``."""
        tag, _, sub = path.partition(".")
        if tag != self.tag:
            return False
        return not sub or sub == self.sub

    @property
    def is_initial(self) -> bool:
        return self.tag == "initial"

    @property
    def is_loading(self) -> bool:
        return self.tag == "loading"

    @property
    def is_ready(self) -> bool:
        return self.tag == "ready"

    @property
    def is_idle(self) -> bool:
        return self.tag == "ready" and self.sub == "idle"

    @property
    def is_playing(self) -> bool:
        return self.tag == "ready" and self.sub == "playing"

    @property
    def is_paused(self) -> bool:
        return self.tag == "ready" and self.sub == "paused"

    @property
    def is_ended(self) -> bool:
        return self.tag == "ended"

    @property
    def is_errored(self) -> bool:
        return self.tag == "errored"

    def __str__(self) -> str:
        if self.sub is None:
            return self.tag
        return f"{self.tag}.{self.sub}"


INITIAL = PlaybackState("initial")
LOADING = PlaybackState("loading")
IDLE = PlaybackState("ready", "idle")
PLAYING = PlaybackState("ready", "playing")
PAUSED = PlaybackState("ready", "paused")
ENDED = PlaybackState("ended")
ERRORED = PlaybackState("errored")


@dataclass(frozen=True)
class PlaybackContext:
    """Data carried alongside the state; replaced on every transition."""

    volume: float = 1.0
    rate: float = 1.0
    duration: float = 0.0
    mute: bool = False
    loop: bool = False
    error: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class MachineEvent:
    """Marker base type for events accepted by `PlaybackMachine.dispatch`."""

    pass


@dataclass(frozen=True)
class Load(MachineEvent):
    """Start (or restart) loading `source` with the given engine settings."""

    source: str | None = None
    volume: float = 1.0
    rate: float = 1.0
    mute: bool = False
    loop: bool = False


@dataclass(frozen=True)
class Ready(MachineEvent):
    """First readiness signal with the now-known duration in seconds."""

    duration: float


@dataclass(frozen=True)
class Error(MachineEvent):
    """Fatal load or playback failure."""

    message: str


@dataclass(frozen=True)
class Retry(MachineEvent):
    pass


@dataclass(frozen=True)
class Play(MachineEvent):
    pass


@dataclass(frozen=True)
class Pause(MachineEvent):
    pass


@dataclass(frozen=True)
class End(MachineEvent):
    """Natural end of track."""

    pass


@dataclass(frozen=True)
class Volume(MachineEvent):
    value: float


@dataclass(frozen=True)
class Rate(MachineEvent):
    value: float


@dataclass(frozen=True)
class Mute(MachineEvent):
    """Toggle the mute flag."""

    pass


@dataclass(frozen=True)
class Loop(MachineEvent):
    """Toggle the loop flag."""

    pass


class PlaybackMachine:
    """Finite-state machine for one playback session.

    `dispatch` never raises: events that have no transition from the current
    state, events whose guard fails and objects that are not machine events
    all leave state and context untouched.
    """

    def __init__(
        self,
        *,
        initial_state: PlaybackState = INITIAL,
        initial_context: PlaybackContext | None = None,
    ) -> None:
        self._state = initial_state
        self._context = initial_context or PlaybackContext()

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def context(self) -> PlaybackContext:
        return self._context

    def reset(self) -> None:
        """Return to `initial` with a default context (session teardown)."""
        self._state = INITIAL
        self._context = PlaybackContext()

    def dispatch(self, event: object) -> PlaybackState:
        """Apply one event and return the resulting state."""
        if not isinstance(event, MachineEvent):
            return self._state
        transition = self._transition(self._state, self._context, event)
        if transition is not None:
            self._state, self._context = transition
        return self._state

    @staticmethod
    def _transition(
        state: PlaybackState, context: PlaybackContext, event: MachineEvent
    ) -> tuple[PlaybackState, PlaybackContext] | None:
        if isinstance(event, Load):
            if not state.is_initial and event.source == context.source:
                return None
            return LOADING, replace(
                context,
                source=event.source,
                volume=clamp_volume(event.volume),
                rate=clamp_rate(event.rate),
                mute=event.mute,
                loop=event.loop,
                duration=0.0,
                error=None,
            )

        if isinstance(event, Error):
            if state.is_loading or state.is_ready:
                return ERRORED, replace(context, error=event.message)
            return None

        if state.is_loading:
            if isinstance(event, Ready):
                return IDLE, replace(context, duration=_coerce_duration(event.duration))
            return None

        if state.is_errored:
            if isinstance(event, Retry):
                return LOADING, replace(context, error=None, duration=0.0)
            return None

        if not state.is_ready:
            return None

        if isinstance(event, Play):
            if state.is_idle or state.is_paused:
                return PLAYING, context
            return None
        if isinstance(event, Pause):
            return (PAUSED, context) if state.is_playing else None
        if isinstance(event, End):
            return (ENDED, context) if state.is_playing else None
        if isinstance(event, Volume):
            if _is_valid_volume(event.value):
                return state, replace(context, volume=float(event.value))
            return None
        if isinstance(event, Rate):
            if _is_valid_rate(event.value):
                return state, replace(context, rate=float(event.value))
            return None
        if isinstance(event, Mute):
            return state, replace(context, mute=not context.mute)
        if isinstance(event, Loop):
            return state, replace(context, loop=not context.loop)
        return None


def _is_valid_volume(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return 0.0 <= value <= 1.0


def _is_valid_rate(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return 0.0 < value <= RATE_MAX


def _coerce_duration(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    numeric = float(value)
    if not math.isfinite(numeric):
        return 0.0
    return max(0.0, numeric)

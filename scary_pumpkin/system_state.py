# scary_pumpkin/system_state.py

import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from scary_pumpkin import config


class Mode(Enum):
    IDLE = "idle"
    PLAYING = "playing"


# ---------------- Events (producers -> orchestrator) ----------------

@dataclass(frozen=True)
class MotionDetected:
    at: float


@dataclass(frozen=True)
class PlaybackFinished:
    path: str
    at: float
    ok: bool = True


@dataclass(frozen=True)
class SensorFailed:
    reason: str
    at: float


# ---------------- Effects (orchestrator executes) ----------------

@dataclass(frozen=True)
class DisarmSensor:
    pass


@dataclass(frozen=True)
class ArmSensor:
    not_before: float


@dataclass(frozen=True)
class PlayWelcome:
    pass


@dataclass(frozen=True)
class PlayFromPlaylist:
    pass


@dataclass(frozen=True)
class DispatchPolicy:
    welcome_interval: Optional[float] = None
    settle_sec: float = config.SENSOR_SETTLE_SEC


@dataclass(frozen=True)
class ControllerState:
    mode: Mode = Mode.IDLE
    last_played_at: float = 0.0

    @property
    def playing(self) -> bool:
        return self.mode == Mode.PLAYING


def welcome_due(state: ControllerState, policy: DispatchPolicy, now: float) -> bool:
    if policy.welcome_interval is None:
        return False
    return now - state.last_played_at >= policy.welcome_interval


def transition(state: ControllerState, event, policy: DispatchPolicy) -> Tuple[ControllerState, List[object]]:
    """Dispatch one event. Pure: returns the next state and the effects to run."""
    if isinstance(event, MotionDetected):
        if state.playing:
            return state, []
        play = PlayWelcome() if welcome_due(state, policy, event.at) else PlayFromPlaylist()
        return replace(state, mode=Mode.PLAYING), [DisarmSensor(), play]

    if isinstance(event, PlaybackFinished):
        if not state.playing:
            return state, []
        nxt = replace(state, mode=Mode.IDLE, last_played_at=event.at)
        return nxt, [ArmSensor(not_before=event.at + policy.settle_sec)]

    raise TypeError(f"unknown event {event!r}")


@dataclass
class BlinkPattern:
    """Light flicker: toggle every tick while playing, random extra delay on some ticks."""

    tick_sec: float = config.BLINK_TICK_SEC
    jitter_min_ms: int = config.BLINK_JITTER_MIN_MS
    jitter_max_ms: int = config.BLINK_JITTER_MAX_MS
    rng: random.Random = field(default_factory=random.Random, repr=False)
    light_on: bool = False

    def next(self, playing: bool) -> Tuple[bool, float]:
        """Return (light state, seconds until the next tick)."""
        if not playing:
            self.light_on = False
            return False, self.tick_sec

        self.light_on = not self.light_on
        delay = self.tick_sec
        # Roughly half the ticks get stretched.
        if self.rng.randint(1, 10) > 5:
            delay += self.rng.randint(self.jitter_min_ms, self.jitter_max_ms) / 1000.0
        return self.light_on, delay

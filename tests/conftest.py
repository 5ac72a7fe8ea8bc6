import threading
from typing import Dict, List, Optional

import pytest

from scary_pumpkin.config import AppSettings
from scary_pumpkin.system_state import PlaybackFinished


class FakeGPIO:
    """Stands in for the RPi.GPIO module."""

    BCM = 11
    BOARD = 10
    OUT = 0
    IN = 1
    LOW = 0
    HIGH = 1
    VALID_PINS = range(0, 28)

    def __init__(self):
        self.mode = None
        self.warnings = True
        self.directions: Dict[int, int] = {}
        self.levels: Dict[int, int] = {}
        self.writes: List[tuple] = []
        self.cleaned: List[Optional[int]] = []
        self._samples: Dict[int, List[int]] = {}
        self.read_error: Optional[Exception] = None
        self.samples_done = threading.Event()
        self.lock = threading.Lock()

    def setwarnings(self, flag):
        self.warnings = flag

    def setmode(self, mode):
        self.mode = mode

    def setup(self, pin, direction, initial=None, pull_up_down=None):
        if pin not in self.VALID_PINS:
            raise ValueError("The channel sent is invalid on a Raspberry Pi")
        self.directions[pin] = direction
        if initial is not None:
            self.levels[pin] = initial

    def output(self, pin, value):
        if self.directions.get(pin) != self.OUT:
            raise RuntimeError("The GPIO channel has not been set up as an OUTPUT")
        with self.lock:
            self.levels[pin] = value
            self.writes.append((pin, value))

    def feed(self, pin, samples):
        """Queue input samples; the last one repeats once the queue runs dry."""
        with self.lock:
            self._samples[pin] = list(samples)
            self.samples_done.clear()

    def input(self, pin):
        if self.read_error is not None:
            raise self.read_error
        if pin not in self.directions:
            raise RuntimeError("You must setup() the GPIO channel first")
        with self.lock:
            queued = self._samples.get(pin)
            if queued:
                value = queued.pop(0)
                self.levels[pin] = value
                if not queued:
                    self.samples_done.set()
                return value
            return self.levels.get(pin, self.LOW)

    def cleanup(self, pin=None):
        self.cleaned.append(pin)
        if pin is None:
            self.directions.clear()
        else:
            self.directions.pop(pin, None)


class FakePlayer:
    """Playback session double: records starts, finishes on demand."""

    def __init__(self, emit=None, clock=None, fail=False):
        self.emit = emit
        self.clock = clock
        self.fail = fail
        self.started: List[str] = []
        self.is_playing = False
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True
        return True

    def start(self, path):
        if self.is_playing or self.closed:
            self.emit(PlaybackFinished(path=path, at=self.clock(), ok=False))
            return False
        self.started.append(path)
        if self.fail:
            self.emit(PlaybackFinished(path=path, at=self.clock(), ok=False))
            return False
        self.is_playing = True
        return True

    def finish(self):
        self.is_playing = False
        self.emit(PlaybackFinished(path=self.started[-1], at=self.clock(), ok=True))

    def close(self):
        self.closed = True
        self.is_playing = False


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_gpio():
    return FakeGPIO()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sound_dir(tmp_path):
    root = tmp_path / "SoundEffects"
    (root / "ghosts").mkdir(parents=True)
    for name in ("welcome-01.mp3", "scream.mp3", "ghosts/moan.MP3", "notes.txt"):
        (root / name).write_bytes(b"\x00")
    return root


@pytest.fixture
def settings(sound_dir):
    return AppSettings(
        motion_sensor_pin=18,
        light_switch_pin=26,
        sound_effects_path=sound_dir,
        welcome_sound="welcome-01.mp3",
        welcome_sound_interval=None,
    )

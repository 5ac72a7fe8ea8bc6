# scary_pumpkin/orchestrator.py

import logging
import queue
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional

from scary_pumpkin import config
from scary_pumpkin.audio_player import PlaybackSession
from scary_pumpkin.config import AppSettings
from scary_pumpkin.errors import EmptyPlaylist, HardwareAcquisitionError
from scary_pumpkin.gpio_devices import GpioController, LightSwitch
from scary_pumpkin.pir_sensor import MotionEventSource, PirSensor
from scary_pumpkin.playlist import Playlist, scan_sound_effects
from scary_pumpkin.system_state import (
    ArmSensor,
    BlinkPattern,
    ControllerState,
    DisarmSensor,
    DispatchPolicy,
    Mode,
    PlayFromPlaylist,
    PlayWelcome,
    SensorFailed,
    transition,
)

log = logging.getLogger(__name__)


class Orchestrator:
    """Owns every device and runs the main loop.

    Producers (sensor thread, audio watcher) only put events on `events`.
    Dispatch, playlist access and light writes all happen on the thread that
    calls run()/tick(), so dispatch never overlaps with itself.
    """

    def __init__(
        self,
        settings: AppSettings,
        controller: GpioController,
        *,
        player=None,
        sensor: Optional[PirSensor] = None,
        light: Optional[LightSwitch] = None,
        playlist: Optional[Playlist] = None,
        blink: Optional[BlinkPattern] = None,
        scan: Callable[..., List[str]] = scan_sound_effects,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._controller = controller
        self._scan = scan
        self._clock = clock

        self.events: "queue.Queue[object]" = queue.Queue()
        self.light = light or LightSwitch(controller, settings.light_switch_pin)
        self.sensor = sensor or PirSensor(controller, settings.motion_sensor_pin)
        self.motion = MotionEventSource(self.sensor, self.events.put, clock=clock)
        self.player = player if player is not None else PlaybackSession(self.events.put, clock=clock)
        self.playlist = playlist or Playlist()
        self.blink = blink or BlinkPattern()

        self.policy = DispatchPolicy(welcome_interval=settings.welcome_sound_interval)
        self.state = ControllerState(last_played_at=clock())

        self._rearm_at: Optional[float] = None
        self._progress_ms = 0.0
        self._stop = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shut_down = False

    @property
    def rearm_at(self) -> Optional[float]:
        return self._rearm_at

    # ---------------- Setup ----------------
    def refill(self) -> None:
        paths = self._scan(self._settings.sound_effects_path)
        if not paths:
            raise EmptyPlaylist(f"no sound effect files found in {self._settings.sound_effects_path}")
        self.playlist.load(paths)

    def setup(self) -> None:
        """Load the sound library, claim both pins, open the audio engine."""
        self.refill()
        self.light.setup()
        self.sensor.initialize()
        if not self.player.open():
            log.warning("[MAIN] audio unavailable; sounds will be skipped")

    def startup(self) -> None:
        """Announce once; the sensor is armed when the welcome sound ends."""
        self.state = replace(self.state, mode=Mode.PLAYING)
        self._play(str(self._settings.welcome_sound_path))

    # ---------------- Dispatch ----------------
    def handle(self, event) -> None:
        if isinstance(event, SensorFailed):
            raise HardwareAcquisitionError(
                f"motion sensor on pin {self._settings.motion_sensor_pin} failed: {event.reason}",
                pin=self._settings.motion_sensor_pin,
            )
        self.state, effects = transition(self.state, event, self.policy)
        for effect in effects:
            self._apply(effect)

    def _apply(self, effect) -> None:
        if isinstance(effect, DisarmSensor):
            self._rearm_at = None
            self.motion.disarm()
        elif isinstance(effect, ArmSensor):
            self._rearm_at = effect.not_before
        elif isinstance(effect, PlayWelcome):
            self._play(str(self._settings.welcome_sound_path))
        elif isinstance(effect, PlayFromPlaylist):
            # Every sound plays once before the library is scanned again.
            if self.playlist.is_empty:
                self.refill()
            self._play(self.playlist.pick_one())
        else:
            raise TypeError(f"unknown effect {effect!r}")

    def _play(self, path: str) -> None:
        # A failed start comes back as PlaybackFinished(ok=False).
        self.player.start(path)

    def pump(self) -> None:
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                break
            self.handle(event)

        if self._rearm_at is not None and not self._stop.is_set() and self._clock() >= self._rearm_at:
            self._rearm_at = None
            self.motion.arm()

    # ---------------- Main loop ----------------
    def tick(self) -> float:
        self.pump()

        playing = self.player.is_playing
        light_on, delay = self.blink.next(playing)
        self.light.set(light_on)

        if playing:
            self._progress_ms += delay * 1000.0
            if self._progress_ms >= config.PROGRESS_LOG_MS:
                log.debug("[MAIN] .")
                self._progress_ms = 0.0
        else:
            self._progress_ms = 0.0
        return delay

    def run(self) -> None:
        log.info("[MAIN] Running.")
        while not self._stop.is_set():
            delay = self.tick()
            self._stop.wait(delay)

    def request_stop(self) -> None:
        self._stop.set()

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shut_down:
                return
            self._shut_down = True

        self._stop.set()
        self._rearm_at = None
        self.motion.disarm()
        self.sensor.shutdown()
        self.player.close()
        self.light.release()
        self._controller.close()
        log.info("[MAIN] shutting down")

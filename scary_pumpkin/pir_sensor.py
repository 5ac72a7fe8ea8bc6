# scary_pumpkin/pir_sensor.py

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from scary_pumpkin import config
from scary_pumpkin.errors import CancellationRequested, HardwareAcquisitionError
from scary_pumpkin.gpio_devices import GpioController
from scary_pumpkin.system_state import MotionDetected, SensorFailed

log = logging.getLogger(__name__)

# Example of a compatible sensor: Parallax PIR Rev. A (output high while motion is seen).


class SensorState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    LISTENING = "listening"
    STOPPED = "stopped"
    ERROR = "error"


class EdgeDetector:
    """Rising-edge rule applied to each new sample."""

    def __init__(self, level: bool = False):
        self.level = level

    def update(self, level: bool) -> bool:
        rising = level and not self.level
        # Falling edges only update the stored level.
        self.level = level
        return rising


@dataclass
class PollHandle:
    token: threading.Event
    thread: threading.Thread

    @property
    def cancelled(self) -> bool:
        return self.token.is_set()


class PirSensor:
    def __init__(
        self,
        controller: GpioController,
        pin: int,
        name: str = "PIR Sensor",
        poll_sec: float = config.SENSOR_POLL_SEC,
    ):
        self._controller = controller
        self._pin = pin
        self._name = name
        self._poll_sec = poll_sec

        self._edges = EdgeDetector()
        self._state = SensorState.UNINITIALIZED
        self._claimed = False
        self._handle: Optional[PollHandle] = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> SensorState:
        with self._lock:
            return self._state

    @property
    def detecting_motion(self) -> bool:
        return self._edges.level

    def initialize(self) -> None:
        with self._lock:
            if self._state in (SensorState.INITIALIZED, SensorState.LISTENING, SensorState.STOPPED):
                return
        try:
            self._controller.claim_input(self._pin, self._name)
        except HardwareAcquisitionError as e:
            with self._lock:
                self._state = SensorState.ERROR
            log.error(f"[PIR] {self._name}: {e}")
            log.error(f"[PIR] {self._name}: initialize sensor on pin {self._pin} ERROR")
            raise

        with self._lock:
            self._state = SensorState.INITIALIZED
            self._claimed = True
        log.info(f"[PIR] {self._name}: initialize sensor on pin {self._pin} SUCCESS")

    def start(
        self,
        on_rising_edge: Callable[[], None],
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> PollHandle:
        with self._lock:
            current = self._handle
            if self._state == SensorState.LISTENING and current is not None and not current.cancelled:
                return current
            if self._state not in (SensorState.INITIALIZED, SensorState.STOPPED):
                raise RuntimeError(f"{self._name} cannot start from state {self._state.value}")

        # A cancelled session may still be leaving its loop; never run two at once.
        if current is not None and current.thread is not threading.current_thread():
            current.thread.join(timeout=max(self._poll_sec * 4, 1.0))

        with self._lock:
            token = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(token, on_rising_edge, on_failure),
                name="PIR",
                daemon=True,
            )
            handle = PollHandle(token=token, thread=thread)
            self._handle = handle
            self._state = SensorState.LISTENING
        thread.start()
        return handle

    def stop(self, handle: Optional[PollHandle] = None) -> None:
        with self._lock:
            handle = handle or self._handle
            if handle is None or handle.cancelled:
                return
            handle.token.set()
            if handle is self._handle and self._state == SensorState.LISTENING:
                self._state = SensorState.STOPPED
        log.info(f"[PIR] {self._name}: stopping")

    def shutdown(self) -> None:
        self.stop()
        with self._lock:
            handle = self._handle
            self._handle = None
            held_pin = self._claimed
            was_down = self._state == SensorState.UNINITIALIZED
            self._state = SensorState.UNINITIALIZED
            self._claimed = False
        if was_down:
            return

        if handle is not None and handle.thread.is_alive() and handle.thread is not threading.current_thread():
            handle.thread.join(timeout=max(self._poll_sec * 4, 1.0))
        if held_pin:
            self._controller.release(self._pin)
        log.info(f"[PIR] {self._name}: shutting down")

    def _run(
        self,
        token: threading.Event,
        on_rising_edge: Callable[[], None],
        on_failure: Optional[Callable[[Exception], None]],
    ) -> None:
        log.info(f"[PIR] {self._name}: now listening...")
        try:
            while True:
                if token.is_set():
                    raise CancellationRequested()

                level = self._controller.read(self._pin)
                if self._edges.update(level):
                    try:
                        on_rising_edge()
                    except Exception:
                        # Never let a handler crash the polling thread.
                        log.exception(f"[PIR] {self._name}: rising-edge handler failed")

                token.wait(self._poll_sec)
        except CancellationRequested:
            log.debug(f"[PIR] {self._name}: listening stopped")
        except (RuntimeError, ValueError) as e:
            # This session is over; a new start() needs a fresh token.
            token.set()
            with self._lock:
                if self._handle is not None and self._handle.token is token:
                    self._state = SensorState.ERROR
            log.error(f"[PIR] {self._name}: read failed on pin {self._pin}: {e}")
            if on_failure is not None:
                on_failure(e)


class MotionEventSource:
    """Turns sensor rising edges into MotionDetected events."""

    def __init__(
        self,
        sensor: PirSensor,
        emit: Callable[[object], None],
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sensor = sensor
        self._emit = emit
        self._clock = clock
        self._handle: Optional[PollHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def arm(self) -> None:
        if self.armed:
            return
        self._handle = self._sensor.start(self._on_rising_edge, self._on_failure)

    def disarm(self) -> None:
        if self._handle is None:
            return
        self._sensor.stop(self._handle)
        self._handle = None

    def _on_rising_edge(self) -> None:
        log.info(f"[PIR] {self._sensor.name}: motion detected")
        self._emit(MotionDetected(at=self._clock()))

    def _on_failure(self, error: Exception) -> None:
        self._emit(SensorFailed(reason=str(error), at=self._clock()))

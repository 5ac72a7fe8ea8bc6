# scary_pumpkin/gpio_devices.py

import logging
import threading
from typing import Dict

from scary_pumpkin.errors import HardwareAcquisitionError

log = logging.getLogger(__name__)


def _load_rpi_gpio():
    # Imported lazily: RPi.GPIO refuses to import anywhere but on a Pi.
    import RPi.GPIO as GPIO

    return GPIO


class GpioController:
    """Single owner of the GPIO module; hands out pins one owner at a time."""

    def __init__(self, gpio=None):
        try:
            self._gpio = gpio if gpio is not None else _load_rpi_gpio()
            self._gpio.setwarnings(False)
            self._gpio.setmode(self._gpio.BCM)
        except (ImportError, RuntimeError) as e:
            raise HardwareAcquisitionError(f"cannot open GPIO controller: {e}") from e

        self._owners: Dict[int, str] = {}
        self._lock = threading.Lock()
        self._closed = False

    def _reserve(self, pin: int, owner: str) -> None:
        with self._lock:
            if self._closed:
                raise HardwareAcquisitionError("GPIO controller is closed", pin=pin)
            holder = self._owners.get(pin)
            if holder is not None:
                raise HardwareAcquisitionError(f"GPIO {pin} already in use by {holder}", pin=pin)
            self._owners[pin] = owner

    def _unreserve(self, pin: int) -> None:
        with self._lock:
            self._owners.pop(pin, None)

    def claim_input(self, pin: int, owner: str) -> None:
        self._reserve(pin, owner)
        try:
            # Drive low briefly so the line starts from a known resting state.
            self._gpio.setup(pin, self._gpio.OUT, initial=self._gpio.LOW)
            self._gpio.output(pin, self._gpio.LOW)
            self._gpio.setup(pin, self._gpio.IN)
        except (ValueError, RuntimeError) as e:
            self._unreserve(pin)
            raise HardwareAcquisitionError(f"cannot claim GPIO {pin} for {owner}: {e}", pin=pin) from e

    def claim_output(self, pin: int, owner: str, initial: bool = False) -> None:
        self._reserve(pin, owner)
        try:
            self._gpio.setup(pin, self._gpio.OUT, initial=self._gpio.HIGH if initial else self._gpio.LOW)
        except (ValueError, RuntimeError) as e:
            self._unreserve(pin)
            raise HardwareAcquisitionError(f"cannot claim GPIO {pin} for {owner}: {e}", pin=pin) from e

    def read(self, pin: int) -> bool:
        return self._gpio.input(pin) == self._gpio.HIGH

    def write(self, pin: int, on: bool) -> None:
        self._gpio.output(pin, self._gpio.HIGH if on else self._gpio.LOW)

    def release(self, pin: int) -> None:
        with self._lock:
            if self._owners.pop(pin, None) is None:
                return
        try:
            self._gpio.cleanup(pin)
        except (ValueError, RuntimeError) as e:
            log.warning(f"[GPIO] cleanup of pin {pin} failed: {e}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._owners.clear()
        try:
            self._gpio.cleanup()
        except RuntimeError as e:
            log.warning(f"[GPIO] cleanup failed: {e}")


class LightSwitch:
    """Transistor output that switches the lights."""

    def __init__(self, controller: GpioController, pin: int):
        self._controller = controller
        self._pin = pin
        self._ready = False

    def setup(self) -> None:
        try:
            self._controller.claim_output(self._pin, "light switch", initial=False)
        except HardwareAcquisitionError:
            log.error(f"[LIGHT] initialize light switch on pin {self._pin} ERROR")
            raise
        log.info(f"[LIGHT] initialize light switch on pin {self._pin} SUCCESS")
        self._ready = True

    def set(self, on: bool) -> None:
        if not self._ready:
            return
        self._controller.write(self._pin, on)

    def release(self) -> None:
        if not self._ready:
            return
        self.set(False)
        self._ready = False
        self._controller.release(self._pin)

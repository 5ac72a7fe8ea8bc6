# scary_pumpkin/errors.py


class ScaryPumpkinError(Exception):
    pass


class ConfigurationError(ScaryPumpkinError):
    """Missing or invalid settings. Raised before any hardware is touched."""


class HardwareAcquisitionError(ScaryPumpkinError):
    """A GPIO controller or pin could not be acquired, or stopped responding."""

    def __init__(self, message: str, pin=None):
        super().__init__(message)
        self.pin = pin


class EmptyPlaylist(ScaryPumpkinError):
    """pick_one() was called on a pool with no sounds left."""


class CancellationRequested(ScaryPumpkinError):
    """Raised inside a polling loop once its stop token is set. Not an error."""

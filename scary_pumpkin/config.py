# scary_pumpkin/config.py

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from scary_pumpkin.errors import ConfigurationError

# Settings file (JSON), relative to the working directory
APP_SETTINGS_FILE = os.getenv("SCARY_PUMPKIN_CONFIG", "appSettings.json")

# Keys in the settings file
MOTION_SENSOR_PIN_KEY = "motionSensorPin"
LIGHT_SWITCH_PIN_KEY = "lightSwitchPin"
SOUND_EFFECTS_PATH_KEY = "soundEffectsPath"
WELCOME_SOUND_KEY = "welcomeSound"
WELCOME_SOUND_INTERVAL_KEY = "welcomeSoundInterval"

# GPIO (BCM numbering)
MIN_BCM_PIN = 0
MAX_BCM_PIN = 27

# PIR sensor
SENSOR_POLL_SEC = 0.15
SENSOR_SETTLE_SEC = 3.0

# Light blink
BLINK_TICK_SEC = 0.05
BLINK_JITTER_MIN_MS = 20
BLINK_JITTER_MAX_MS = 140
PROGRESS_LOG_MS = 500

# Audio
AUDIO_EXTENSIONS = (".mp3",)
AUDIO_POLL_SEC = 0.05


@dataclass(frozen=True)
class AppSettings:
    motion_sensor_pin: int
    light_switch_pin: int
    sound_effects_path: Path
    welcome_sound: str
    welcome_sound_interval: Optional[float] = None

    @property
    def welcome_sound_path(self) -> Path:
        return self.sound_effects_path / self.welcome_sound


def _require(raw: Dict[str, Any], key: str) -> Any:
    if key not in raw or raw[key] is None:
        raise ConfigurationError(f"missing setting '{key}'")
    return raw[key]


def _parse_pin(raw: Dict[str, Any], key: str) -> int:
    value = _require(raw, key)
    # bool is an int subclass; "true" is never a pin number
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be an integer GPIO line, got {value!r}")
    try:
        pin = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be an integer GPIO line, got {value!r}") from None
    if isinstance(value, float) and value != pin:
        raise ConfigurationError(f"'{key}' must be an integer GPIO line, got {value!r}")
    if not MIN_BCM_PIN <= pin <= MAX_BCM_PIN:
        raise ConfigurationError(f"'{key}' must be in {MIN_BCM_PIN}..{MAX_BCM_PIN}, got {pin}")
    return pin


def _parse_text(raw: Dict[str, Any], key: str) -> str:
    value = _require(raw, key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"'{key}' must be a non-empty string")
    return value.strip()


def _parse_interval(raw: Dict[str, Any]) -> Optional[float]:
    value = raw.get(WELCOME_SOUND_INTERVAL_KEY)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigurationError(f"'{WELCOME_SOUND_INTERVAL_KEY}' must be a number of seconds")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{WELCOME_SOUND_INTERVAL_KEY}' must be a number of seconds") from None
    if seconds < 0:
        raise ConfigurationError(f"'{WELCOME_SOUND_INTERVAL_KEY}' must not be negative")
    return seconds


def parse_settings(raw: Dict[str, Any]) -> AppSettings:
    if not isinstance(raw, dict):
        raise ConfigurationError("settings must be a JSON object")

    motion_pin = _parse_pin(raw, MOTION_SENSOR_PIN_KEY)
    light_pin = _parse_pin(raw, LIGHT_SWITCH_PIN_KEY)
    if motion_pin == light_pin:
        raise ConfigurationError(f"motion sensor and light switch share GPIO {motion_pin}")

    return AppSettings(
        motion_sensor_pin=motion_pin,
        light_switch_pin=light_pin,
        sound_effects_path=Path(_parse_text(raw, SOUND_EFFECTS_PATH_KEY)).expanduser(),
        welcome_sound=_parse_text(raw, WELCOME_SOUND_KEY),
        welcome_sound_interval=_parse_interval(raw),
    )


def load_settings(path: str = APP_SETTINGS_FILE) -> AppSettings:
    """Read and validate the JSON settings file.

    Example:
        {
            "motionSensorPin": 18,
            "lightSwitchPin": 26,
            "soundEffectsPath": "./SoundEffects/",
            "welcomeSound": "welcome-01.mp3",
            "welcomeSoundInterval": 300
        }
    """
    settings_file = Path(path)
    if not settings_file.is_file():
        raise ConfigurationError(f"settings file not found: {settings_file}")

    try:
        with open(settings_file, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"malformed JSON in {settings_file}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"cannot read {settings_file}: {e}") from e

    return parse_settings(raw)

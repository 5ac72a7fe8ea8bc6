import time
from dataclasses import replace
from pathlib import Path

import pytest

from scary_pumpkin.errors import EmptyPlaylist, HardwareAcquisitionError
from scary_pumpkin.gpio_devices import GpioController
from scary_pumpkin.orchestrator import Orchestrator
from scary_pumpkin.pir_sensor import PirSensor
from scary_pumpkin.system_state import Mode, MotionDetected

from conftest import FakePlayer


@pytest.fixture
def make_pumpkin(fake_gpio, clock, settings):
    built = []

    def build(scan=None, fail=False, **overrides):
        s = settings
        if overrides:
            s = replace(settings, **overrides)
        controller = GpioController(fake_gpio)
        player = FakePlayer(clock=clock, fail=fail)
        kwargs = {"player": player, "clock": clock, "sensor": PirSensor(controller, s.motion_sensor_pin, poll_sec=0.01)}
        if scan is not None:
            kwargs["scan"] = scan
        pumpkin = Orchestrator(s, controller, **kwargs)
        player.emit = pumpkin.events.put
        pumpkin.setup()
        built.append(pumpkin)
        return pumpkin

    yield build
    for pumpkin in built:
        pumpkin.shutdown()


def names(paths):
    return [Path(p).name for p in paths]


def finish_and_settle(pumpkin, clock):
    pumpkin.player.finish()
    pumpkin.pump()
    clock.advance(3.0)
    pumpkin.pump()


def test_setup_loads_library_and_claims_pins(make_pumpkin, fake_gpio):
    pumpkin = make_pumpkin()

    assert len(pumpkin.playlist) == 3
    assert fake_gpio.directions[18] == fake_gpio.IN
    assert fake_gpio.directions[26] == fake_gpio.OUT
    assert pumpkin.player.opened


def test_setup_fails_without_sounds(make_pumpkin):
    with pytest.raises(EmptyPlaylist):
        make_pumpkin(scan=lambda path: [])


def test_startup_plays_welcome_then_arms_after_settle(make_pumpkin, clock):
    pumpkin = make_pumpkin()
    pumpkin.startup()

    assert names(pumpkin.player.started) == ["welcome-01.mp3"]
    assert pumpkin.state.mode == Mode.PLAYING
    assert not pumpkin.motion.armed

    pumpkin.player.finish()
    pumpkin.pump()
    assert pumpkin.state.mode == Mode.IDLE
    assert pumpkin.state.last_played_at == clock()
    assert pumpkin.rearm_at == clock() + 3.0
    assert not pumpkin.motion.armed

    clock.advance(2.9)
    pumpkin.pump()
    assert not pumpkin.motion.armed

    clock.advance(0.1)
    pumpkin.pump()
    assert pumpkin.motion.armed
    assert pumpkin.rearm_at is None


def test_motion_plays_from_playlist_and_pauses_sensor(make_pumpkin, clock):
    pumpkin = make_pumpkin()
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)

    pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()

    assert len(pumpkin.player.started) == 2
    assert pumpkin.state.mode == Mode.PLAYING
    assert not pumpkin.motion.armed
    assert len(pumpkin.playlist) == 2


def test_motion_while_playing_is_a_no_op(make_pumpkin, clock):
    pumpkin = make_pumpkin()
    pumpkin.startup()

    for _ in range(3):
        pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()

    assert names(pumpkin.player.started) == ["welcome-01.mp3"]
    assert len(pumpkin.playlist) == 3


def test_cooldown_not_elapsed_uses_playlist(make_pumpkin, clock):
    pumpkin = make_pumpkin(welcome_sound_interval=60.0)
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)

    clock.advance(7.0)
    pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()

    assert len(pumpkin.playlist) == 2


def test_cooldown_elapsed_replays_welcome(make_pumpkin, clock):
    pumpkin = make_pumpkin(welcome_sound_interval=60.0)
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)

    clock.advance(90.0)
    pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()

    assert names(pumpkin.player.started) == ["welcome-01.mp3", "welcome-01.mp3"]
    assert len(pumpkin.playlist) == 3


def test_every_sound_plays_once_before_refill(make_pumpkin, clock):
    pumpkin = make_pumpkin()
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)

    for _ in range(3):
        pumpkin.events.put(MotionDetected(at=clock()))
        pumpkin.pump()
        finish_and_settle(pumpkin, clock)

    assert sorted(names(pumpkin.player.started[1:])) == ["moan.MP3", "scream.mp3", "welcome-01.mp3"]
    assert pumpkin.playlist.is_empty

    pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()
    assert len(pumpkin.player.started) == 5
    assert len(pumpkin.playlist) == 2


def test_refill_that_finds_nothing_is_fatal(make_pumpkin, clock, sound_dir):
    library = ["only.mp3"]
    pumpkin = make_pumpkin(scan=lambda path: list(library))
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)

    pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()
    finish_and_settle(pumpkin, clock)

    library.clear()
    pumpkin.events.put(MotionDetected(at=clock()))
    with pytest.raises(EmptyPlaylist):
        pumpkin.pump()


def test_failed_playback_does_not_stick(make_pumpkin, clock):
    pumpkin = make_pumpkin(fail=True)
    pumpkin.startup()
    pumpkin.pump()

    assert pumpkin.state.mode == Mode.IDLE
    assert pumpkin.rearm_at is not None


def test_light_is_low_whenever_not_playing(make_pumpkin, clock, fake_gpio):
    pumpkin = make_pumpkin()

    for _ in range(5):
        pumpkin.tick()
        assert fake_gpio.levels[26] == fake_gpio.LOW

    pumpkin.startup()
    seen = set()
    for _ in range(6):
        pumpkin.tick()
        seen.add(fake_gpio.levels[26])
    assert seen == {fake_gpio.LOW, fake_gpio.HIGH}

    pumpkin.player.finish()
    for _ in range(5):
        pumpkin.tick()
        assert fake_gpio.levels[26] == fake_gpio.LOW


def test_shutdown_is_idempotent_and_leaves_light_low(make_pumpkin, clock, fake_gpio):
    pumpkin = make_pumpkin()
    pumpkin.startup()
    pumpkin.tick()
    finish_and_settle(pumpkin, clock)
    pumpkin.player.is_playing = True
    pumpkin.tick()

    pumpkin.shutdown()
    pumpkin.shutdown()

    assert (26, fake_gpio.LOW) == fake_gpio.writes[-1]
    assert fake_gpio.cleaned.count(None) == 1
    assert pumpkin.player.closed
    assert not pumpkin.motion.armed


def test_run_exits_when_stop_requested(make_pumpkin):
    pumpkin = make_pumpkin()
    pumpkin.request_stop()
    pumpkin.run()


def test_refused_start_still_rearms(make_pumpkin, clock):
    pumpkin = make_pumpkin()
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)

    # The engine is still busy with something else.
    pumpkin.player.is_playing = True
    pumpkin.events.put(MotionDetected(at=clock()))
    pumpkin.pump()

    assert pumpkin.state.mode == Mode.IDLE
    assert pumpkin.rearm_at == clock() + 3.0


def test_sensor_read_failure_is_fatal(make_pumpkin, clock, fake_gpio):
    pumpkin = make_pumpkin()
    pumpkin.startup()
    finish_and_settle(pumpkin, clock)
    assert pumpkin.motion.armed

    fake_gpio.read_error = RuntimeError("channel went away")
    deadline = time.monotonic() + 2.0
    while pumpkin.events.empty() and time.monotonic() < deadline:
        time.sleep(0.01)

    with pytest.raises(HardwareAcquisitionError, match="channel went away") as info:
        pumpkin.pump()
    assert info.value.pin == 18
    assert not pumpkin.motion.armed

    pumpkin.shutdown()
    assert 18 in fake_gpio.cleaned

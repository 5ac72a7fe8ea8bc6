# scary_pumpkin/audio_player.py

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import pygame

from scary_pumpkin import config
from scary_pumpkin.system_state import PlaybackFinished

log = logging.getLogger(__name__)


class PlaybackSession:
    """One sound at a time through pygame.mixer.music.

    start() returns immediately; a watcher thread waits for the music to end
    and emits PlaybackFinished. Engine errors are logged here and reported as
    a failed completion, so callers never wait on a sound that will not end.
    """

    def __init__(
        self,
        emit: Callable[[object], None],
        clock: Callable[[], float] = time.monotonic,
        poll_sec: float = config.AUDIO_POLL_SEC,
        mixer=None,
    ):
        self._emit = emit
        self._clock = clock
        self._poll_sec = poll_sec
        self._mixer = mixer if mixer is not None else pygame.mixer

        self._lock = threading.Lock()
        self._playing = False
        self._closing = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    @property
    def is_playing(self) -> bool:
        with self._lock:
            return self._playing

    def open(self, retries: int = 5, delay: float = 0.4) -> bool:
        self._mixer.pre_init(frequency=44100, size=-16, channels=2, buffer=2048)
        last = None
        for _ in range(retries):
            try:
                self._mixer.init()
                log.info("[AUDIO] mixer ready")
                return True
            except pygame.error as e:
                last = e
                time.sleep(delay)
        log.warning(f"[AUDIO] mixer init failed: {last}")
        return False

    def start(self, path: str) -> bool:
        with self._lock:
            if self._closing.is_set():
                refused = "session closed"
            elif self._playing:
                refused = "already playing"
            else:
                refused = None
                self._playing = True

        if refused is not None:
            # Refusals count as failed completions too.
            log.warning(f"[AUDIO] {refused}, ignoring {Path(path).name}")
            self._emit(PlaybackFinished(path=str(path), at=self._clock(), ok=False))
            return False

        log.info(f"[AUDIO] playing {Path(path).name}")
        try:
            self._mixer.music.load(str(path))
            self._mixer.music.play()
        except (pygame.error, OSError) as e:
            log.warning(f"[AUDIO] playback failed for {path}: {e}")
            self._finish(path, ok=False)
            return False

        self._watcher = threading.Thread(target=self._watch, args=(path,), name="AUDIO", daemon=True)
        self._watcher.start()
        return True

    def stop(self) -> None:
        self._closing.set()
        try:
            if self._mixer.get_init():
                self._mixer.music.stop()
        except pygame.error as e:
            log.debug(f"[AUDIO] stop failed: {e}")

        watcher = self._watcher
        if watcher is not None and watcher.is_alive() and watcher is not threading.current_thread():
            watcher.join(timeout=max(self._poll_sec * 4, 1.0))

    def close(self) -> None:
        self.stop()
        try:
            if self._mixer.get_init():
                self._mixer.quit()
        except pygame.error as e:
            log.debug(f"[AUDIO] mixer quit failed: {e}")

    def _watch(self, path: str) -> None:
        ok = True
        try:
            while not self._closing.is_set() and self._mixer.music.get_busy():
                self._closing.wait(self._poll_sec)
        except pygame.error as e:
            log.warning(f"[AUDIO] lost track of {path}: {e}")
            ok = False
        self._finish(path, ok)

    def _finish(self, path: str, ok: bool) -> None:
        with self._lock:
            self._playing = False
        log.info(f"[AUDIO] done! ({Path(path).name})" if ok else f"[AUDIO] gave up on {Path(path).name}")
        self._emit(PlaybackFinished(path=str(path), at=self._clock(), ok=ok))

# scary_pumpkin/playlist.py

import logging
import random
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from scary_pumpkin import config
from scary_pumpkin.errors import EmptyPlaylist

log = logging.getLogger(__name__)


def scan_sound_effects(directory, extensions: Sequence[str] = config.AUDIO_EXTENSIONS) -> List[str]:
    """Every audio file below `directory`, recursively, sorted."""
    root = Path(directory)
    if not root.is_dir():
        log.warning(f"[PLAYLIST] sound effects directory not found: {root}")
        return []

    wanted = {ext.lower() for ext in extensions}
    found = sorted(str(p) for p in root.rglob("*") if p.is_file() and p.suffix.lower() in wanted)
    log.info(f"[PLAYLIST] found {len(found)} sound effect files in {root}")
    return found


class Playlist:
    """Pool of not-yet-played sounds. Each one plays once per refill."""

    def __init__(self, paths: Iterable[str] = (), rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._pool: List[str] = []
        self.load(paths)

    def __len__(self) -> int:
        return len(self._pool)

    @property
    def is_empty(self) -> bool:
        return not self._pool

    def load(self, paths: Iterable[str]) -> None:
        # Keep first occurrence order, drop duplicates.
        self._pool = list(dict.fromkeys(paths))

    def pick_one(self) -> str:
        if not self._pool:
            raise EmptyPlaylist("no sound effects left in the pool")
        index = self._rng.randrange(len(self._pool))
        return self._pool.pop(index)

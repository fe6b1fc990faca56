# typetrainer/timer.py
from __future__ import annotations

import math
import time
from typing import Callable, Optional


class PracticeTimer:
    """
    Elapsed-seconds clock for a session.

    start() is idempotent: restarting keeps the first recorded start time, so a
    paused-then-resumed session keeps counting from where it began. Only reset()
    forgets it. The host calls update() on every tick.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.started_at: Optional[float] = None
        self.running = False
        self.elapsed_seconds = 0

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = self._clock()
        self.running = True

    def stop(self) -> None:
        if self.running:
            self.update()
        self.running = False

    def reset(self) -> None:
        self.started_at = None
        self.running = False
        self.elapsed_seconds = 0

    def update(self) -> int:
        if self.running and self.started_at is not None:
            self.elapsed_seconds = max(0, math.floor(self._clock() - self.started_at))
        return self.elapsed_seconds

    def now(self) -> float:
        return self._clock()

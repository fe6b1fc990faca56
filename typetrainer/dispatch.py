# typetrainer/dispatch.py
"""
How a session runs its persistence calls.

Both dispatchers share one contract: submit(fn, *args, on_done=cb) runs fn and
later calls cb(result, error) on the session's own thread. Exactly one of
result/error is meaningful. InlineDispatcher does it all immediately;
BackgroundDispatcher runs fn on a worker thread and parks the callback until
the owner calls drain() (the session does this on every tick).
"""
from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)

Callback = Callable[[Any, Optional[BaseException]], None]


class InlineDispatcher:
    def submit(self, fn: Callable, *args, on_done: Optional[Callback] = None) -> None:
        try:
            result, error = fn(*args), None
        except Exception as e:
            log.warning("Dispatched call %s failed: %s", getattr(fn, "__name__", fn), e)
            result, error = None, e
        if on_done is not None:
            on_done(result, error)

    def drain(self) -> int:
        return 0

    @property
    def in_flight(self) -> int:
        return 0

    def shutdown(self, wait: bool = True) -> None:
        pass


class BackgroundDispatcher:
    def __init__(self, max_workers: int = 2):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="typetrainer-io")
        self._done: "queue.Queue[tuple[Optional[Callback], Any, Optional[BaseException]]]" = queue.Queue()
        self._lock = threading.Lock()
        self._in_flight = 0

    def submit(self, fn: Callable, *args, on_done: Optional[Callback] = None) -> None:
        with self._lock:
            self._in_flight += 1
        future = self._pool.submit(fn, *args)

        def _finished(f):
            error = f.exception()
            if error is not None:
                log.warning("Background call %s failed: %s", getattr(fn, "__name__", fn), error)
            result = None if error is not None else f.result()
            self._done.put((on_done, result, error))

        future.add_done_callback(_finished)

    def drain(self) -> int:
        """Apply every finished callback on the calling thread. Returns how many ran."""
        ran = 0
        while True:
            try:
                cb, result, error = self._done.get_nowait()
            except queue.Empty:
                break
            with self._lock:
                self._in_flight -= 1
            if cb is not None:
                cb(result, error)
            ran += 1
        return ran

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
        if wait:
            self.drain()

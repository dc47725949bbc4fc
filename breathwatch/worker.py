"""A single background thread that runs submitted calls in order."""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable

_STOP = object()


class WorkerThread:
    """Run submitted callables one at a time on a dedicated thread."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            future, fn, args = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args)
            except BaseException as exc:  # delivered to the caller via the future
                future.set_exception(exc)
            else:
                future.set_result(result)

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Queue ``fn(*args)`` and return a future for its result."""
        with self._lock:
            if self._closed:
                raise RuntimeError("worker thread is closed")
            future: Future = Future()
            self._queue.put((future, fn, args))
        return future

    def close(self) -> None:
        """Finish queued work, then stop the thread and wait for it."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
        self._thread.join()

    def __enter__(self) -> "WorkerThread":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
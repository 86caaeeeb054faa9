from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Tracks work a worker must finish before it may be torn down.

    ``spawn`` runs a detached task on its own thread; nobody awaits it, so any
    exception is logged here instead of escaping. ``extend`` marks synchronous
    work (an event handler in progress) as in flight.
    """

    def __init__(self, name: str = "iepcache") -> None:
        self.name = name
        self._cond = threading.Condition()
        self._active = 0

    @property
    def active(self) -> int:
        with self._cond:
            return self._active

    def _enter(self) -> None:
        with self._cond:
            self._active += 1

    def _exit(self) -> None:
        with self._cond:
            self._active -= 1
            self._cond.notify_all()

    @contextlib.contextmanager
    def extend(self) -> Iterator[None]:
        self._enter()
        try:
            yield
        finally:
            self._exit()

    def spawn(
        self, label: str, func: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> threading.Thread:
        self._enter()

        def _run() -> None:
            try:
                func(*args, **kwargs)
            except Exception:
                logger.exception("%s background task failed: %s", self.name, label)
            finally:
                self._exit()

        thread = threading.Thread(target=_run, name=f"{self.name}:{label}", daemon=True)
        try:
            thread.start()
        except RuntimeError:
            self._exit()
            raise
        return thread

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._active == 0, timeout)

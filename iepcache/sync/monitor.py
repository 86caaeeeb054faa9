from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

import httpx

from ..http_client import make_request, resolve_url
from .reconciler import ReconcileResult

if TYPE_CHECKING:
    from ..worker import OfflineWorker

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Fires ``sync`` for every registered tag when the origin comes back."""

    def __init__(
        self,
        worker: OfflineWorker,
        *,
        interval_s: float,
        check_url: str | None = None,
    ) -> None:
        self.worker = worker
        self.interval_s = interval_s
        self.check_url = check_url or resolve_url(worker.config.origin, "/")
        self.online: bool | None = None

    def check(self) -> bool:
        try:
            self.worker.fetcher.fetch(make_request("HEAD", self.check_url))
        except httpx.TransportError:
            return False
        return True

    def tick(self) -> list[ReconcileResult]:
        online = self.check()
        restored = online and self.online is not True
        if online != self.online:
            logger.info("origin is %s", "online" if online else "offline")
        self.online = online
        if not restored:
            return []
        return self.worker.sync_all()

    def run(self, stop_event: threading.Event | None = None) -> None:
        stop = stop_event or threading.Event()
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("connectivity check failed")
            if stop.wait(self.interval_s):
                return


def start_monitor(
    monitor: ConnectivityMonitor, stop_event: threading.Event
) -> threading.Thread:
    thread = threading.Thread(
        target=monitor.run, args=(stop_event,), name="iepcache:monitor", daemon=True
    )
    thread.start()
    return thread

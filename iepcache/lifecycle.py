from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from .http_client import Fetcher, make_request, resolve_url
from .store import CachedResponse, CacheStore

if TYPE_CHECKING:
    from .worker import OfflineWorker

logger = logging.getLogger(__name__)

SUPERSEDE_GRACE_S = 5.0


class LifecycleError(RuntimeError):
    pass


class WorkerState(enum.StrEnum):
    UNINITIALIZED = "uninitialized"
    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVE = "active"
    SUPERSEDED = "superseded"


_TRANSITIONS: dict[WorkerState, set[WorkerState]] = {
    WorkerState.UNINITIALIZED: {WorkerState.INSTALLING},
    WorkerState.INSTALLING: {WorkerState.WAITING, WorkerState.SUPERSEDED},
    WorkerState.WAITING: {WorkerState.INSTALLING, WorkerState.ACTIVE, WorkerState.SUPERSEDED},
    WorkerState.ACTIVE: {WorkerState.SUPERSEDED},
    WorkerState.SUPERSEDED: set(),
}


class Lifecycle:
    def __init__(self, state: WorkerState = WorkerState.UNINITIALIZED) -> None:
        self._lock = threading.Lock()
        self._state = state

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return self._state

    def transition(self, target: WorkerState) -> WorkerState:
        with self._lock:
            if target not in _TRANSITIONS[self._state]:
                raise LifecycleError(f"cannot move from {self._state} to {target}")
            previous = self._state
            self._state = target
        logger.debug("worker %s -> %s", previous, target)
        return previous


@dataclass
class InstallReport:
    cache_name: str
    cached: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache_name": self.cache_name,
            "cached": list(self.cached),
            "failed": dict(self.failed),
        }


def precache(
    store: CacheStore,
    fetcher: Fetcher,
    *,
    origin: str,
    manifest: Iterable[str],
) -> InstallReport:
    """Fetch every manifest URL into the current namespace.

    A URL that cannot be fetched is logged and skipped; the rest still land.
    """
    report = InstallReport(cache_name=store.open())
    for path in manifest:
        url = resolve_url(origin, path)
        request = make_request("GET", url)
        try:
            response = fetcher.fetch(request)
        except httpx.HTTPError as exc:
            logger.error("failed to cache %s: %s", url, exc)
            report.failed[path] = str(exc) or exc.__class__.__name__
            continue
        if not response.is_success:
            logger.error("failed to cache %s: status %s", url, response.status_code)
            report.failed[path] = f"status {response.status_code}"
            continue
        try:
            store.put(request, CachedResponse.from_response(response, url=url))
        except Exception as exc:
            logger.exception("failed to store %s", url)
            report.failed[path] = str(exc) or exc.__class__.__name__
            continue
        report.cached.append(path)
    logger.info(
        "cached %d app resources into %s (%d failed)",
        len(report.cached),
        report.cache_name,
        len(report.failed),
    )
    return report


def purge_stale_namespaces(store: CacheStore, *, keep: Iterable[str] = ()) -> list[str]:
    """Delete every namespace except the current one and ``keep``; returns the deleted names."""
    kept = {store.namespace, *keep}
    deleted: list[str] = []
    for name in store.namespaces():
        if name in kept:
            continue
        logger.info("deleting old cache: %s", name)
        if store.delete_namespace(name):
            deleted.append(name)
    return deleted


class Registration:
    """Holds the active worker and the one waiting to replace it.

    A freshly installed worker waits until the active one has no work in
    flight, unless ``skip_waiting`` forces the handover.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.active: OfflineWorker | None = None
        self.waiting: OfflineWorker | None = None

    def update(self, worker: OfflineWorker) -> InstallReport:
        report = worker.install()
        with self._lock:
            if self.waiting is not None and self.waiting is not worker:
                self.waiting.supersede()
            self.waiting = worker
        self.try_activate()
        return report

    def skip_waiting(self) -> bool:
        return self.try_activate(force=True)

    def try_activate(self, *, force: bool = False) -> bool:
        with self._lock:
            incoming = self.waiting
            if incoming is None:
                return False
            outgoing = self.active
            if outgoing is not None and not force and outgoing.busy:
                logger.debug("new worker waiting for %s to go idle", outgoing.cache_name)
                return False
            if outgoing is not None:
                outgoing.supersede()
                if not outgoing.wait_idle(SUPERSEDE_GRACE_S):
                    logger.warning("superseded worker %s still busy", outgoing.cache_name)
            incoming.activate()
            self.active = incoming
            self.waiting = None
            return True

    def fetch(self, request: httpx.Request) -> httpx.Response | None:
        worker = self.active
        if worker is None:
            return None
        try:
            return worker.handle_fetch(request)
        finally:
            if self.waiting is not None:
                self.try_activate()

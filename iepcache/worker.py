from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from .config import OfflineCacheConfig
from .http_client import Fetcher
from .interceptor import NetworkFirstInterceptor
from .lifecycle import (
    InstallReport,
    Lifecycle,
    LifecycleError,
    WorkerState,
    precache,
    purge_stale_namespaces,
)
from .push import Notification, NotificationCenter, handle_notification_click, handle_push
from .store import CacheStore, PendingAction
from .sync import DeferredActionQueue, ReconcileResult, SyncReconciler, SyncTagRegistry
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)


class OfflineWorker:
    """Offline cache controller for one deploy (one cache version).

    Event handlers are registered by name in ``handlers`` and invoked through
    ``dispatch``; each one runs inside ``tasks.extend()`` so the host can tell
    when the worker still has work in flight.
    """

    def __init__(
        self,
        config: OfflineCacheConfig,
        *,
        store: CacheStore | None = None,
        fetcher: Fetcher | None = None,
        transport: httpx.BaseTransport | None = None,
        notifications: NotificationCenter | None = None,
        tags: SyncTagRegistry | None = None,
    ) -> None:
        self.config = config
        self.cache_name = config.cache_name
        self._owns_store = store is None
        self.store = store or CacheStore(config.db_path, namespace=self.cache_name)
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(timeout_s=config.network_timeout_s, transport=transport)
        self.tasks = BackgroundTasks(name=self.cache_name)
        self.notifications = notifications or NotificationCenter()
        self.interceptor = NetworkFirstInterceptor(
            self.store,
            self.fetcher,
            origin=config.origin,
            tasks=self.tasks,
            cacheable_methods=config.cacheable_methods,
        )
        self.queue = DeferredActionQueue(self.store, tags)
        self.reconciler = SyncReconciler(self.queue, self.fetcher)
        self.lifecycle = Lifecycle(self._restored_state())
        self.handlers: dict[str, Callable[..., Any]] = {
            "install": self.install,
            "activate": self.activate,
            "fetch": self.handle_fetch,
            "sync": self.handle_sync,
            "push": self.handle_push,
            "notificationclick": self.handle_notification_click,
        }

    def _restored_state(self) -> WorkerState:
        saved = self.store.get_worker_state()
        if not saved or saved["cache_version"] != self.config.cache_version:
            return WorkerState.UNINITIALIZED
        try:
            state = WorkerState(saved["state"])
        except ValueError:
            return WorkerState.UNINITIALIZED
        if state in {WorkerState.WAITING, WorkerState.ACTIVE}:
            return state
        return WorkerState.UNINITIALIZED

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    @property
    def busy(self) -> bool:
        return self.tasks.active > 0

    def _persist_state(self) -> None:
        try:
            self.store.set_worker_state(self.config.cache_version, str(self.state))
        except Exception:
            logger.exception("failed to persist worker state")

    def dispatch(self, event: str, *args: Any, **kwargs: Any) -> Any:
        handler = self.handlers.get(event)
        if handler is None:
            raise ValueError(f"unknown event: {event}")
        return handler(*args, **kwargs)

    def install(self) -> InstallReport:
        logger.info("installing %s", self.cache_name)
        with self.tasks.extend():
            if self.state is WorkerState.ACTIVE:
                return self._precache()
            self.lifecycle.transition(WorkerState.INSTALLING)
            try:
                report = self._precache()
            except Exception as exc:
                self.lifecycle.transition(WorkerState.SUPERSEDED)
                raise LifecycleError(f"install failed for {self.cache_name}") from exc
            self.lifecycle.transition(WorkerState.WAITING)
            self._persist_state()
            return report

    def _precache(self) -> InstallReport:
        return precache(
            self.store,
            self.fetcher,
            origin=self.config.origin,
            manifest=self.config.install_manifest,
        )

    def activate(self) -> list[str]:
        logger.info("activating %s", self.cache_name)
        with self.tasks.extend():
            if self.state is WorkerState.ACTIVE:
                return []
            self.lifecycle.transition(WorkerState.ACTIVE)
            self._persist_state()
            keep = self.queue.tags.namespaces() if self.config.preserve_queues_on_activate else ()
            return purge_stale_namespaces(self.store, keep=keep)

    def supersede(self) -> None:
        if self.state is WorkerState.SUPERSEDED:
            return
        self.lifecycle.transition(WorkerState.SUPERSEDED)
        logger.info("worker %s superseded", self.cache_name)

    def handle_fetch(self, request: httpx.Request) -> httpx.Response | None:
        """Intercept ``request``; None means the caller should send it itself."""
        if self.state is not WorkerState.ACTIVE:
            return None
        with self.tasks.extend():
            return self.interceptor.handle(request)

    def handle_sync(self, tag: str) -> ReconcileResult:
        logger.info("background sync: %s", tag)
        with self.tasks.extend():
            return self.reconciler.reconcile(tag)

    def sync_all(self) -> list[ReconcileResult]:
        return [self.handle_sync(tag) for tag in self.queue.registered_tags()]

    def defer(self, tag: str, request: httpx.Request) -> PendingAction:
        return self.queue.enqueue(tag, request)

    def handle_push(self, payload: bytes | str | dict[str, Any] | None = None) -> Notification:
        logger.info("push notification received")
        with self.tasks.extend():
            return handle_push(payload, config=self.config, center=self.notifications)

    def handle_notification_click(
        self, notification: Notification, action: str | None = None
    ) -> str | None:
        logger.info("notification click received")
        return handle_notification_click(
            notification, action, config=self.config, center=self.notifications
        )

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self.tasks.wait_idle(timeout)

    def close(self) -> None:
        self.wait_idle(timeout=5.0)
        if self._owns_fetcher:
            self.fetcher.close()
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> OfflineWorker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from ..http_client import Fetcher
from .queue import DeferredActionQueue

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    tag: str
    ok: bool = True
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncReconciler:
    def __init__(self, queue: DeferredActionQueue, fetcher: Fetcher) -> None:
        self.queue = queue
        self.fetcher = fetcher

    def reconcile(self, tag: str) -> ReconcileResult:
        """Replay every pending action for ``tag`` once.

        Successful replays are removed; failures stay queued for the next
        connectivity restoration. Nothing here raises.
        """
        result = ReconcileResult(tag=tag)
        item = self.queue.tags.get(tag)
        if item is None:
            logger.warning("ignoring sync for unknown tag %s", tag)
            result.ok = False
            result.error = "unknown tag"
            return result

        store = self.queue.store
        attempt_id: int | None = None
        try:
            attempt_id = store.start_sync_attempt(tag)
            logger.info("syncing %ss", item.label)
            for action in self.queue.pending(tag):
                result.attempted += 1
                try:
                    response = self.fetcher.fetch(action.to_request())
                except Exception as exc:
                    result.failed += 1
                    logger.error("failed to sync %s %s: %s", item.label, action.id, exc)
                    continue
                if not response.is_success:
                    result.failed += 1
                    logger.warning(
                        "failed to sync %s %s: status %s",
                        item.label,
                        action.id,
                        response.status_code,
                    )
                    continue
                self.queue.remove(action.id)
                result.synced += 1
                logger.info("synced %s %s", item.label, action.id)
            store.unregister_sync_if_drained(tag, item.namespace)
        except Exception as exc:
            result.ok = False
            result.error = str(exc).strip() or exc.__class__.__name__
            logger.exception("background sync failed for %s", tag)
        finally:
            if attempt_id is not None:
                try:
                    store.finish_sync_attempt(
                        attempt_id,
                        ok=result.ok and result.failed == 0,
                        attempted=result.attempted,
                        synced=result.synced,
                        failed=result.failed,
                        error=result.error,
                    )
                except Exception:
                    logger.exception("failed to record sync attempt for %s", tag)
        return result


def submit_or_defer(
    request: httpx.Request,
    tag: str,
    *,
    fetcher: Fetcher,
    queue: DeferredActionQueue,
) -> httpx.Response | None:
    """Send a mutation now, or queue it for background sync when offline.

    Returns the server response, or None when the request was deferred.
    """
    request.read()
    try:
        return fetcher.fetch(request)
    except httpx.TransportError as exc:
        logger.info("offline, deferring %s %s: %s", request.method, request.url, exc)
    queue.enqueue(tag, request)
    return None

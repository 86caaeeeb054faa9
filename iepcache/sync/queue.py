from __future__ import annotations

import logging

import httpx

from ..store import CacheStore, PendingAction
from .tags import SyncTagRegistry

logger = logging.getLogger(__name__)


class DeferredActionQueue:
    """Mutations that could not reach the server, grouped by sync tag."""

    def __init__(self, store: CacheStore, tags: SyncTagRegistry | None = None) -> None:
        self.store = store
        self.tags = tags or SyncTagRegistry()

    def enqueue(self, tag: str, request: httpx.Request) -> PendingAction:
        """Store ``request`` for replay and register ``tag`` for background sync.

        Both happen in one transaction, so a queued action always has a sync
        registration that will trigger its replay.
        """
        item = self.tags.require(tag)
        action = self.store.add_pending_action(namespace=item.namespace, tag=tag, request=request)
        logger.info("queued %s %s %s for %s", item.label, action.method, action.url, tag)
        return action

    def pending(self, tag: str) -> list[PendingAction]:
        item = self.tags.get(tag)
        if item is None:
            return []
        return self.store.pending_actions(item.namespace)

    def count(self, tag: str) -> int:
        item = self.tags.get(tag)
        if item is None:
            return 0
        return self.store.count_pending_actions(item.namespace)

    def remove(self, action_id: int) -> bool:
        """Remove a replayed action; removing one that is already gone is a no-op."""
        return self.store.remove_pending_action(action_id)

    def clear(self, tag: str) -> int:
        item = self.tags.require(tag)
        removed = self.store.clear_pending_actions(item.namespace)
        self.store.unregister_sync_if_drained(tag, item.namespace)
        return removed

    def registered_tags(self) -> list[str]:
        return self.store.sync_registrations()

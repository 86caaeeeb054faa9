from __future__ import annotations

import contextlib
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path

import httpx

from .. import db
from . import cache as store_cache
from . import queue as store_queue
from .types import CachedResponse, CacheKey, PendingAction, SyncAttempt
from .utils import cache_key, now_iso


class CacheStore:
    """Versioned response cache plus the deferred-action tables for one origin.

    ``namespace`` is the cache name of the running deploy. Every read and write
    goes through a single connection guarded by a lock, so background cache
    writes from other threads never interleave with a reader mid-statement.
    """

    def __init__(self, db_path: Path | str = db.DEFAULT_DB_PATH, *, namespace: str):
        if not namespace:
            raise ValueError("namespace is required")
        self.db_path = Path(db_path).expanduser()
        self.namespace = namespace
        self._lock = threading.RLock()
        self.conn = db.connect(self.db_path, check_same_thread=False)
        db.initialize_schema(self.conn)

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self.conn
            except BaseException:
                self.conn.rollback()
                raise
            self.conn.commit()

    # Response cache

    def open(self, namespace: str | None = None) -> str:
        name = namespace or self.namespace
        with self.transaction() as conn:
            store_cache.ensure_namespace(conn, name)
        return name

    def put(
        self,
        request: httpx.Request | CacheKey,
        cached: CachedResponse,
        *,
        namespace: str | None = None,
    ) -> str:
        key = self._key(request)
        with self.transaction() as conn:
            return store_cache.put_entry(conn, namespace or self.namespace, key, cached)

    def match(
        self,
        request: httpx.Request | CacheKey,
        *,
        namespace: str | None = None,
    ) -> CachedResponse | None:
        key = self._key(request)
        with self._lock:
            return store_cache.match_entry(
                self.conn, key, namespace=namespace, prefer=self.namespace
            )

    def keys(self, namespace: str | None = None) -> list[CacheKey]:
        with self._lock:
            return store_cache.list_keys(self.conn, namespace or self.namespace)

    def count(self, namespace: str | None = None) -> int:
        with self._lock:
            return store_cache.count_entries(self.conn, namespace or self.namespace)

    def namespaces(self, *, kind: str | None = None) -> list[str]:
        with self._lock:
            return store_cache.list_namespaces(self.conn, kind=kind)

    def delete_namespace(self, name: str) -> bool:
        with self.transaction() as conn:
            return store_cache.delete_namespace(conn, name)

    # Deferred actions

    def add_pending_action(
        self,
        *,
        namespace: str,
        tag: str,
        request: httpx.Request,
        register: bool = True,
    ) -> PendingAction:
        body = request.read() or None
        headers = {
            name: value for name, value in request.headers.items() if name != "content-length"
        }
        with self.transaction() as conn:
            action = store_queue.insert_pending_action(
                conn,
                namespace=namespace,
                tag=tag,
                method=request.method,
                url=str(request.url),
                headers=headers,
                body=body,
            )
            if register:
                store_queue.register_sync_tag(conn, tag)
        return action

    def pending_actions(self, namespace: str) -> list[PendingAction]:
        with self._lock:
            return store_queue.pending_actions(self.conn, namespace)

    def remove_pending_action(self, action_id: int) -> bool:
        with self.transaction() as conn:
            return store_queue.delete_pending_action(conn, action_id)

    def clear_pending_actions(self, namespace: str) -> int:
        with self.transaction() as conn:
            return store_queue.clear_pending_actions(conn, namespace)

    def count_pending_actions(self, namespace: str) -> int:
        with self._lock:
            return store_queue.count_pending_actions(self.conn, namespace)

    def register_sync(self, tag: str) -> None:
        with self.transaction() as conn:
            store_queue.register_sync_tag(conn, tag)

    def unregister_sync_if_drained(self, tag: str, namespace: str) -> bool:
        with self.transaction() as conn:
            return store_queue.unregister_if_drained(conn, tag, namespace)

    def sync_registrations(self) -> list[str]:
        with self._lock:
            return store_queue.registered_sync_tags(self.conn)

    def start_sync_attempt(self, tag: str) -> int:
        with self.transaction() as conn:
            return store_queue.start_sync_attempt(conn, tag)

    def finish_sync_attempt(
        self,
        attempt_id: int,
        *,
        ok: bool,
        attempted: int,
        synced: int,
        failed: int,
        error: str | None = None,
    ) -> None:
        with self.transaction() as conn:
            store_queue.finish_sync_attempt(
                conn,
                attempt_id,
                ok=ok,
                attempted=attempted,
                synced=synced,
                failed=failed,
                error=error,
            )

    def sync_attempts(self, *, tag: str | None = None, limit: int = 10) -> list[SyncAttempt]:
        with self._lock:
            return store_queue.recent_sync_attempts(self.conn, tag=tag, limit=limit)

    # Worker lifecycle bookkeeping

    def get_worker_state(self) -> dict[str, str] | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT cache_version, state, updated_at FROM worker_state WHERE id = 1"
            ).fetchone()
        if row is None:
            return None
        return {
            "cache_version": str(row["cache_version"]),
            "state": str(row["state"]),
            "updated_at": str(row["updated_at"]),
        }

    def set_worker_state(self, cache_version: str, state: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO worker_state(id, cache_version, state, updated_at)
                VALUES (1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    cache_version = excluded.cache_version,
                    state = excluded.state,
                    updated_at = excluded.updated_at
                """,
                (cache_version, state, now_iso()),
            )

    @staticmethod
    def _key(request: httpx.Request | CacheKey) -> CacheKey:
        if isinstance(request, CacheKey):
            return request
        return cache_key(request.method, str(request.url))

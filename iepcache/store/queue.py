from __future__ import annotations

import json
import sqlite3
from typing import Any

from .cache import QUEUE, ensure_namespace
from .types import PendingAction, SyncAttempt
from .utils import now_iso


def insert_pending_action(
    conn: sqlite3.Connection,
    *,
    namespace: str,
    tag: str,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None,
) -> PendingAction:
    enqueued_at = now_iso()
    ensure_namespace(conn, namespace, kind=QUEUE)
    cur = conn.execute(
        """
        INSERT INTO pending_actions(namespace, tag, method, url, headers_json, body, enqueued_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            namespace,
            tag,
            method.upper(),
            url,
            json.dumps(headers, ensure_ascii=False),
            sqlite3.Binary(body) if body is not None else None,
            enqueued_at,
        ),
    )
    return PendingAction(
        id=int(cur.lastrowid or 0),
        tag=tag,
        namespace=namespace,
        method=method.upper(),
        url=url,
        headers=dict(headers),
        body=body,
        enqueued_at=enqueued_at,
    )


def _row_to_action(row: sqlite3.Row) -> PendingAction:
    try:
        headers = json.loads(row["headers_json"] or "{}")
    except json.JSONDecodeError:
        headers = {}
    body = row["body"]
    return PendingAction(
        id=int(row["id"]),
        tag=str(row["tag"]),
        namespace=str(row["namespace"]),
        method=str(row["method"]),
        url=str(row["url"]),
        headers=headers if isinstance(headers, dict) else {},
        body=bytes(body) if body is not None else None,
        enqueued_at=str(row["enqueued_at"]),
    )


def pending_actions(conn: sqlite3.Connection, namespace: str) -> list[PendingAction]:
    rows = conn.execute(
        """
        SELECT id, namespace, tag, method, url, headers_json, body, enqueued_at
        FROM pending_actions
        WHERE namespace = ?
        ORDER BY id
        """,
        (namespace,),
    ).fetchall()
    return [_row_to_action(row) for row in rows]


def delete_pending_action(conn: sqlite3.Connection, action_id: int) -> bool:
    cur = conn.execute("DELETE FROM pending_actions WHERE id = ?", (action_id,))
    return cur.rowcount > 0


def clear_pending_actions(conn: sqlite3.Connection, namespace: str) -> int:
    cur = conn.execute("DELETE FROM pending_actions WHERE namespace = ?", (namespace,))
    return int(cur.rowcount)


def count_pending_actions(conn: sqlite3.Connection, namespace: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM pending_actions WHERE namespace = ?", (namespace,)
    ).fetchone()
    return int(row["n"]) if row else 0


def register_sync_tag(conn: sqlite3.Connection, tag: str) -> None:
    conn.execute(
        """
        INSERT INTO sync_registrations(tag, registered_at)
        VALUES (?, ?)
        ON CONFLICT(tag) DO UPDATE SET registered_at = excluded.registered_at
        """,
        (tag, now_iso()),
    )


def unregister_if_drained(conn: sqlite3.Connection, tag: str, namespace: str) -> bool:
    """Drop the registration only while the tag's queue is empty, in one statement."""
    cur = conn.execute(
        """
        DELETE FROM sync_registrations
        WHERE tag = ?
          AND NOT EXISTS (SELECT 1 FROM pending_actions WHERE namespace = ?)
        """,
        (tag, namespace),
    )
    return cur.rowcount > 0


def registered_sync_tags(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT tag FROM sync_registrations ORDER BY registered_at, tag").fetchall()
    return [str(row["tag"]) for row in rows]


def start_sync_attempt(conn: sqlite3.Connection, tag: str) -> int:
    cur = conn.execute(
        "INSERT INTO sync_attempts(tag, started_at) VALUES (?, ?)",
        (tag, now_iso()),
    )
    return int(cur.lastrowid or 0)


def finish_sync_attempt(
    conn: sqlite3.Connection,
    attempt_id: int,
    *,
    ok: bool,
    attempted: int,
    synced: int,
    failed: int,
    error: str | None = None,
) -> None:
    conn.execute(
        """
        UPDATE sync_attempts
        SET finished_at = ?, ok = ?, attempted = ?, synced = ?, failed = ?, error = ?
        WHERE id = ?
        """,
        (now_iso(), 1 if ok else 0, attempted, synced, failed, error, attempt_id),
    )


def recent_sync_attempts(
    conn: sqlite3.Connection, *, tag: str | None = None, limit: int = 10
) -> list[SyncAttempt]:
    params: list[Any] = []
    where = ""
    if tag:
        where = "WHERE tag = ?"
        params.append(tag)
    params.append(limit)
    rows = conn.execute(
        f"""
        SELECT id, tag, started_at, finished_at, ok, attempted, synced, failed, error
        FROM sync_attempts
        {where}
        ORDER BY id DESC
        LIMIT ?
        """,
        params,
    ).fetchall()
    return [
        SyncAttempt(
            id=int(row["id"]),
            tag=str(row["tag"]),
            started_at=str(row["started_at"]),
            finished_at=row["finished_at"],
            ok=bool(row["ok"]),
            attempted=int(row["attempted"]),
            synced=int(row["synced"]),
            failed=int(row["failed"]),
            error=row["error"],
        )
        for row in rows
    ]

from __future__ import annotations

import json
import sqlite3

from .types import CachedResponse, CacheKey
from .utils import now_iso

RESPONSES = "responses"
QUEUE = "queue"


def ensure_namespace(conn: sqlite3.Connection, name: str, *, kind: str = RESPONSES) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO cache_namespaces(name, kind, created_at) VALUES (?, ?, ?)",
        (name, kind, now_iso()),
    )


def list_namespaces(conn: sqlite3.Connection, *, kind: str | None = None) -> list[str]:
    if kind is None:
        rows = conn.execute("SELECT name FROM cache_namespaces ORDER BY name").fetchall()
    else:
        rows = conn.execute(
            "SELECT name FROM cache_namespaces WHERE kind = ? ORDER BY name", (kind,)
        ).fetchall()
    return [str(row["name"]) for row in rows]


def delete_namespace(conn: sqlite3.Connection, name: str) -> bool:
    """Drop a namespace together with every entry and pending action under it."""
    conn.execute("DELETE FROM cache_entries WHERE namespace = ?", (name,))
    conn.execute("DELETE FROM pending_actions WHERE namespace = ?", (name,))
    cur = conn.execute("DELETE FROM cache_namespaces WHERE name = ?", (name,))
    return cur.rowcount > 0


def put_entry(
    conn: sqlite3.Connection,
    namespace: str,
    key: CacheKey,
    cached: CachedResponse,
) -> str:
    stored_at = now_iso()
    ensure_namespace(conn, namespace)
    conn.execute(
        """
        INSERT INTO cache_entries(namespace, method, url, status, headers_json, body, stored_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(namespace, method, url) DO UPDATE SET
            status = excluded.status,
            headers_json = excluded.headers_json,
            body = excluded.body,
            stored_at = excluded.stored_at
        """,
        (
            namespace,
            key.method,
            key.url,
            int(cached.status),
            json.dumps(cached.headers, ensure_ascii=False),
            sqlite3.Binary(cached.body),
            stored_at,
        ),
    )
    return stored_at


def _row_to_cached(row: sqlite3.Row) -> CachedResponse:
    try:
        headers = json.loads(row["headers_json"] or "{}")
    except json.JSONDecodeError:
        headers = {}
    return CachedResponse(
        status=int(row["status"]),
        headers=headers if isinstance(headers, dict) else {},
        body=bytes(row["body"]),
        url=str(row["url"]),
        stored_at=str(row["stored_at"]),
    )


def match_entry(
    conn: sqlite3.Connection,
    key: CacheKey,
    *,
    namespace: str | None = None,
    prefer: str | None = None,
) -> CachedResponse | None:
    if namespace is not None:
        row = conn.execute(
            """
            SELECT url, status, headers_json, body, stored_at
            FROM cache_entries
            WHERE namespace = ? AND method = ? AND url = ?
            """,
            (namespace, key.method, key.url),
        ).fetchone()
        return _row_to_cached(row) if row else None
    row = conn.execute(
        """
        SELECT url, status, headers_json, body, stored_at
        FROM cache_entries
        WHERE method = ? AND url = ?
        ORDER BY CASE WHEN namespace = ? THEN 0 ELSE 1 END, namespace
        LIMIT 1
        """,
        (key.method, key.url, prefer or ""),
    ).fetchone()
    return _row_to_cached(row) if row else None


def list_keys(conn: sqlite3.Connection, namespace: str) -> list[CacheKey]:
    rows = conn.execute(
        "SELECT method, url FROM cache_entries WHERE namespace = ? ORDER BY url, method",
        (namespace,),
    ).fetchall()
    return [CacheKey(method=str(row["method"]), url=str(row["url"])) for row in rows]


def count_entries(conn: sqlite3.Connection, namespace: str) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM cache_entries WHERE namespace = ?", (namespace,)
    ).fetchone()
    return int(row["n"]) if row else 0

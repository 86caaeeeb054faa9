from __future__ import annotations

import sqlite3
from pathlib import Path

from .config import DEFAULT_DB_PATH

__all__ = ["DEFAULT_DB_PATH", "connect", "initialize_schema"]


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS cache_namespaces (
            name TEXT PRIMARY KEY,
            kind TEXT NOT NULL DEFAULT 'responses',
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS cache_entries (
            namespace TEXT NOT NULL,
            method TEXT NOT NULL,
            url TEXT NOT NULL,
            status INTEGER NOT NULL,
            headers_json TEXT NOT NULL DEFAULT '{}',
            body BLOB NOT NULL,
            stored_at TEXT NOT NULL,
            PRIMARY KEY (namespace, method, url)
        );
        CREATE INDEX IF NOT EXISTS idx_cache_entries_url ON cache_entries(method, url);

        CREATE TABLE IF NOT EXISTS pending_actions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            namespace TEXT NOT NULL,
            tag TEXT NOT NULL,
            method TEXT NOT NULL,
            url TEXT NOT NULL,
            headers_json TEXT NOT NULL DEFAULT '{}',
            body BLOB,
            enqueued_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_pending_actions_namespace ON pending_actions(namespace, id);

        CREATE TABLE IF NOT EXISTS sync_registrations (
            tag TEXT PRIMARY KEY,
            registered_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS sync_attempts (
            id INTEGER PRIMARY KEY,
            tag TEXT NOT NULL,
            started_at TEXT NOT NULL,
            finished_at TEXT,
            ok INTEGER NOT NULL DEFAULT 0,
            attempted INTEGER NOT NULL DEFAULT 0,
            synced INTEGER NOT NULL DEFAULT 0,
            failed INTEGER NOT NULL DEFAULT 0,
            error TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_sync_attempts_tag ON sync_attempts(tag, started_at DESC);

        CREATE TABLE IF NOT EXISTS worker_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            cache_version TEXT NOT NULL,
            state TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )
    conn.commit()

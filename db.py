# db.py
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

import psycopg2
import psycopg2.extras

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = "cvbuilder.db"


def is_postgres() -> bool:
    return bool((os.getenv("DATABASE_URL") or "").strip())


def sqlite_path() -> str:
    return (os.getenv("SQLITE_PATH") or "").strip() or DEFAULT_SQLITE_PATH


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _sqlite_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(sqlite_path())
    conn.row_factory = sqlite3.Row  # dict-like rows
    return conn


def _pg_conn():
    db_url = (os.getenv("DATABASE_URL") or "").strip()
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    return psycopg2.connect(
        db_url,
        sslmode=os.getenv("PGSSLMODE", "require"),
        cursor_factory=psycopg2.extras.RealDictCursor,
    )


@contextmanager
def get_conn():
    """
    Local dev: SQLite (SQLITE_PATH, default cvbuilder.db)
    Production: Postgres via DATABASE_URL
    """
    conn = _pg_conn() if is_postgres() else _sqlite_conn()
    try:
        yield conn
    finally:
        conn.close()


def _adapt_sql(sql: str) -> str:
    """
    All SQL in the app is written with %s placeholders.
    For SQLite, convert %s -> ?
    """
    return sql if is_postgres() else sql.replace("%s", "?")


def fetchone(sql: str, params: Sequence[Any] = ()) -> Optional[Mapping[str, Any]]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(_adapt_sql(sql), params)
        row = cur.fetchone()
        return dict(row) if row else None


def fetchall(sql: str, params: Sequence[Any] = ()) -> list:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(_adapt_sql(sql), params)
        rows = cur.fetchall() or []
        return [dict(r) for r in rows]


def execute(sql: str, params: Sequence[Any] = ()) -> int:
    """
    Executes a write query and commits. Returns rowcount.
    """
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(_adapt_sql(sql), params)
        conn.commit()
        return int(getattr(cur, "rowcount", 0) or 0)


def insert(sql: str, params: Sequence[Any] = ()) -> int:
    """
    Executes an INSERT and returns the new row id.
    """
    with get_conn() as conn:
        cur = conn.cursor()
        if is_postgres():
            cur.execute(sql + " RETURNING id", params)
            new_id = cur.fetchone()["id"]
        else:
            cur.execute(_adapt_sql(sql), params)
            new_id = cur.lastrowid
        conn.commit()
        return int(new_id)


def scalar(sql: str, params: Sequence[Any] = (), default: Any = None) -> Any:
    """
    Returns the first column of the first row, or default.
    """
    row = fetchone(sql, params)
    if not row:
        return default
    value = next(iter(row.values()))
    return default if value is None else value


# -------------------------
# Schema
# -------------------------
def _id_column() -> str:
    return "SERIAL PRIMARY KEY" if is_postgres() else "INTEGER PRIMARY KEY AUTOINCREMENT"


def init_db() -> None:
    """
    Create tables if missing. Safe to call on every start.
    Timestamps are ISO-8601 UTC text on both backends.
    """
    id_col = _id_column()
    statements = [
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id {id_col},
            username TEXT UNIQUE NOT NULL,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            is_admin INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            ai_generations INTEGER NOT NULL DEFAULT 0,
            cv_saves INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS cvs (
            id {id_col},
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            cv_data TEXT NOT NULL,
            template_id TEXT,
            name TEXT NOT NULL DEFAULT 'Untitled CV',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_cvs_user_updated ON cvs (user_id, updated_at)",
    ]

    with get_conn() as conn:
        cur = conn.cursor()
        for sql in statements:
            cur.execute(sql)
        conn.commit()

    logger.info(f"[DB] Schema ready ({'postgres' if is_postgres() else sqlite_path()})")


def verify_connection() -> bool:
    """Startup probe. Logs the outcome instead of raising."""
    backend = "postgres" if is_postgres() else f"sqlite:{sqlite_path()}"
    try:
        with get_conn() as conn:
            cur = conn.cursor()
            cur.execute("SELECT 1")
            cur.fetchone()
    except (sqlite3.Error, psycopg2.Error) as e:
        logger.error(f"[DB CHECK] {backend} connection FAILED: {e}")
        return False

    logger.info(f"[DB CHECK] {backend} connected")
    return True

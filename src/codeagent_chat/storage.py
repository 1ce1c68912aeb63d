"""SQLite engine and timestamp helpers shared by the chat store."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

SQLITE_JOURNAL_MODES = ("WAL", "DELETE", "TRUNCATE", "PERSIST", "MEMORY", "OFF")


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def ensure_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; treat naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def build_sqlite_engine(
    *,
    db_path: Path,
    busy_timeout_ms: int,
    journal_mode: str = "WAL",
) -> Engine:
    """Engine for the chat store; every connection gets the same pragmas.

    Worker threads record exchanges while the CLI thread reads, so connections
    are not pooled and wait up to ``busy_timeout_ms`` on a locked database.
    """

    mode = journal_mode.strip().upper()
    if mode not in SQLITE_JOURNAL_MODES:
        raise ValueError(f"Unsupported SQLite journal mode: {journal_mode!r}")
    if busy_timeout_ms < 1:
        raise ValueError(f"SQLite busy timeout must be >= 1 ms, got {busy_timeout_ms}")

    pragmas = (
        f"PRAGMA journal_mode = {mode}",
        f"PRAGMA busy_timeout = {busy_timeout_ms}",
        "PRAGMA foreign_keys = ON",
    )

    def _on_connect(dbapi_connection: sqlite3.Connection, _record: object) -> None:
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(pragma)
        finally:
            cursor.close()

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": busy_timeout_ms / 1000.0},
        poolclass=NullPool,
    )
    event.listen(engine, "connect", _on_connect)
    return engine

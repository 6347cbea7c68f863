"""SQLite-backed thread cache.

Each connection gets its own database holding one metadata row per thread
(latest sender, subject, received timestamp and label ids). Full threads
live in the blob store; the row is what listings and counts read.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


_SCHEMA_VERSION = 1


def normalize_timestamp(value: datetime | str | None) -> str:
    """Return ``value`` as a UTC ISO-8601 string; unparseable input maps to now."""

    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("thread_cache_timestamp_unparseable", value=value)
            parsed = None

    if parsed is None:
        parsed = datetime.now(timezone.utc)
    elif parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class ThreadRow:
    """Cached metadata for one thread."""

    id: str
    thread_id: str
    provider_id: str
    latest_sender: dict[str, Any]
    latest_received_on: str
    latest_subject: str
    latest_label_ids: list[str]
    created_at: str | None = None
    updated_at: str | None = None


class ThreadCacheRepository:
    """Repository for the per-connection thread metadata cache."""

    def __init__(self, db_path: Path) -> None:
        """Create a repository.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = db_path

    @classmethod
    def for_connection(cls, cache_dir: Path, connection_id: str) -> ThreadCacheRepository:
        return cls(Path(cache_dir) / f"{connection_id}.sqlite3")

    def initialize(self) -> None:
        """Create or upgrade the cache schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("thread_cache_schema_created", version=_SCHEMA_VERSION, path=str(self._db_path))
                return

            if current_version != _SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    def upsert(self, row: ThreadRow) -> None:
        """Insert or replace the row for ``row.id``.

        ``created_at`` survives updates; every other column is replaced.
        """

        now_iso = datetime.now(timezone.utc).isoformat()

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO threads (
                    id,
                    thread_id,
                    provider_id,
                    latest_sender,
                    latest_received_on,
                    latest_subject,
                    latest_label_ids,
                    created_at,
                    updated_at
                )
                VALUES (
                    :id,
                    :thread_id,
                    :provider_id,
                    :latest_sender,
                    :latest_received_on,
                    :latest_subject,
                    :latest_label_ids,
                    :created_at,
                    :updated_at
                )
                ON CONFLICT(id) DO UPDATE SET
                    thread_id=excluded.thread_id,
                    provider_id=excluded.provider_id,
                    latest_sender=excluded.latest_sender,
                    latest_received_on=excluded.latest_received_on,
                    latest_subject=excluded.latest_subject,
                    latest_label_ids=excluded.latest_label_ids,
                    updated_at=excluded.updated_at
                """,
                {
                    "id": row.id,
                    "thread_id": row.thread_id,
                    "provider_id": row.provider_id,
                    "latest_sender": json.dumps(row.latest_sender),
                    "latest_received_on": normalize_timestamp(row.latest_received_on),
                    "latest_subject": row.latest_subject,
                    "latest_label_ids": json.dumps(row.latest_label_ids),
                    "created_at": now_iso,
                    "updated_at": now_iso,
                },
            )
            conn.commit()

    def get(self, thread_id: str) -> ThreadRow | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM threads WHERE id = ?", (thread_id,)).fetchone()
        return self._row_to_thread(row) if row is not None else None

    def list(
        self,
        *,
        folder_label: str | None = None,
        label_ids: list[str] | None = None,
        query: str | None = None,
        before: str | None = None,
        before_id: str | None = None,
        limit: int = 50,
    ) -> list[ThreadRow]:
        """Return cached rows, newest first.

        Args:
            folder_label: Label id every returned thread must carry.
            label_ids: Thread must carry at least one of these.
            query: Substring matched against subject and sender.
            before: Only rows received strictly before this timestamp, or at
                it when ``before_id`` is given and the row id sorts lower.
            before_id: Id of the last row of the previous page.
            limit: Max results.
        """

        where, params = self._filters(folder_label, label_ids, query)
        if before and before_id is not None:
            where.append("(latest_received_on < ? OR (latest_received_on = ? AND id < ?))")
            params.extend([before, before, before_id])
        elif before:
            where.append("latest_received_on < ?")
            params.append(before)

        sql = "SELECT * FROM threads"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY latest_received_on DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_thread(row) for row in rows]

    def count(self, folder_label: str | None = None) -> int:
        where, params = self._filters(folder_label, None, None)
        sql = "SELECT COUNT(*) FROM threads"
        if where:
            sql += " WHERE " + " AND ".join(where)
        with self._connect() as conn:
            (total,) = conn.execute(sql, params).fetchone()
        return int(total or 0)

    def delete(self, thread_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
            conn.commit()
        return cursor.rowcount > 0

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        finally:
            conn.close()

    def _filters(
        self,
        folder_label: str | None,
        label_ids: list[str] | None,
        query: str | None,
    ) -> tuple[list[str], list[Any]]:
        where: list[str] = []
        params: list[Any] = []
        if folder_label:
            where.append(
                "EXISTS (SELECT 1 FROM json_each(threads.latest_label_ids) WHERE value = ?)"
            )
            params.append(folder_label)
        if label_ids:
            placeholders = ", ".join("?" for _ in label_ids)
            where.append(
                "EXISTS (SELECT 1 FROM json_each(threads.latest_label_ids) "
                f"WHERE value IN ({placeholders}))"
            )
            params.extend(label_ids)
        if query:
            where.append("(latest_subject LIKE ? OR latest_sender LIKE ?)")
            pattern = f"%{query}%"
            params.extend([pattern, pattern])
        return where, params

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS threads (
                id TEXT PRIMARY KEY,
                thread_id TEXT NOT NULL,
                provider_id TEXT NOT NULL,
                latest_sender TEXT NOT NULL,
                latest_received_on TEXT NOT NULL,
                latest_subject TEXT NOT NULL,
                latest_label_ids TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_threads_latest_received_on
                ON threads(latest_received_on);
            """
        )

    def _row_to_thread(self, row: sqlite3.Row) -> ThreadRow:
        return ThreadRow(
            id=row["id"],
            thread_id=row["thread_id"],
            provider_id=row["provider_id"],
            latest_sender=json.loads(row["latest_sender"]),
            latest_received_on=row["latest_received_on"],
            latest_subject=row["latest_subject"] or "",
            latest_label_ids=json.loads(row["latest_label_ids"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

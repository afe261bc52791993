"""SQLite-backed store of synced contact emails.

Full raw messages are kept as JSON alongside the columns needed for paging, so
a contact's timeline can be served page by page without calling Gmail.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pydantic
import structlog

from contact_timeline.cache import parse_timestamp_ms
from contact_timeline.exceptions import EmailStoreError
from contact_timeline.models import RawEmailMessage

logger = structlog.get_logger()


_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class StoredPage:
    """A page of stored emails plus the contact's total stored count."""

    emails: list[RawEmailMessage]
    total_count: int


class EmailStoreRepository:
    """Repository for storing and paging contact emails."""

    def __init__(self, db_path: Path) -> None:
        """Create a repository.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = db_path

    def initialize(self) -> None:
        """Create the store schema if needed."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA foreign_keys=ON;")

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
                logger.info("email_store_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version != _SCHEMA_VERSION:
                raise EmailStoreError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    def upsert_many(self, contact_email: str, emails: list[RawEmailMessage]) -> None:
        """Upsert a batch of emails and link them to ``contact_email``."""

        if not emails:
            return

        now_iso = datetime.now(timezone.utc).isoformat()

        with self._connect() as conn:
            conn.execute("PRAGMA foreign_keys=ON;")
            conn.executemany(
                """
                INSERT INTO emails (gmail_id, thread_id, date_ms, date_iso, payload_json, updated_at_iso)
                VALUES (:gmail_id, :thread_id, :date_ms, :date_iso, :payload_json, :updated_at_iso)
                ON CONFLICT(gmail_id) DO UPDATE SET
                    thread_id=excluded.thread_id,
                    date_ms=excluded.date_ms,
                    date_iso=excluded.date_iso,
                    payload_json=excluded.payload_json,
                    updated_at_iso=excluded.updated_at_iso
                """,
                [
                    {
                        "gmail_id": e.id,
                        "thread_id": e.thread_id,
                        "date_ms": parse_timestamp_ms(e.date),
                        "date_iso": e.date or None,
                        "payload_json": e.model_dump_json(),
                        "updated_at_iso": now_iso,
                    }
                    for e in emails
                ],
            )
            conn.executemany(
                """
                INSERT OR IGNORE INTO contact_emails (contact_email, gmail_id)
                VALUES (?, ?)
                """,
                [(contact_email.lower(), e.id) for e in emails],
            )
            conn.commit()

    def page(self, contact_email: str, offset: int = 0, limit: int = 20) -> StoredPage:
        """Return the contact's emails newest first.

        Args:
            contact_email: Contact whose emails to page.
            offset: Number of emails to skip.
            limit: Page size.
        """

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT e.payload_json
                FROM contact_emails c
                JOIN emails e ON e.gmail_id = c.gmail_id
                WHERE c.contact_email = ?
                ORDER BY e.date_ms DESC, e.gmail_id
                LIMIT ? OFFSET ?;
                """,
                (contact_email.lower(), limit, offset),
            ).fetchall()
            (total,) = conn.execute(
                "SELECT COUNT(*) FROM contact_emails WHERE contact_email = ?;",
                (contact_email.lower(),),
            ).fetchone()

        return StoredPage(emails=[e for e in map(self._row_to_email, rows) if e], total_count=int(total or 0))

    def count(self, contact_email: str) -> int:
        with self._connect() as conn:
            (total,) = conn.execute(
                "SELECT COUNT(*) FROM contact_emails WHERE contact_email = ?;",
                (contact_email.lower(),),
            ).fetchone()
        return int(total or 0)

    def delete_contact(self, contact_email: str) -> None:
        """Forget the contact's links; messages shared with other contacts stay."""

        with self._connect() as conn:
            conn.execute("DELETE FROM contact_emails WHERE contact_email = ?;", (contact_email.lower(),))
            conn.execute(
                "DELETE FROM emails WHERE gmail_id NOT IN (SELECT gmail_id FROM contact_emails);"
            )
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            conn.row_factory = sqlite3.Row
            yield conn
        finally:
            conn.close()

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
            CREATE TABLE IF NOT EXISTS emails (
                gmail_id TEXT PRIMARY KEY,
                thread_id TEXT,
                date_ms INTEGER NOT NULL,
                date_iso TEXT,
                payload_json TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS contact_emails (
                contact_email TEXT NOT NULL,
                gmail_id TEXT NOT NULL REFERENCES emails(gmail_id) ON DELETE CASCADE,
                PRIMARY KEY (contact_email, gmail_id)
            );

            CREATE INDEX IF NOT EXISTS idx_emails_date_ms
                ON emails(date_ms);

            CREATE INDEX IF NOT EXISTS idx_emails_thread_id
                ON emails(thread_id);
            """
        )

    def _row_to_email(self, row: sqlite3.Row) -> RawEmailMessage | None:
        try:
            return RawEmailMessage.model_validate_json(row["payload_json"])
        except pydantic.ValidationError as exc:
            logger.warning("stored_email_unreadable", error=str(exc))
            return None

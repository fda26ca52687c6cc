"""SQLite sink for formatted report tables.

Database: data/report.db (WAL mode)
Tables: report_tables, report_rows
"""
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional, Sequence

from ..exceptions import SinkError


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1


def init_database(db: "str | Path | sqlite3.Connection") -> None:
    """Create report tables if they don't exist.

    Args:
        db: Path to SQLite database file, or an open connection
    """
    if isinstance(db, sqlite3.Connection):
        _init_schema(db)
        return

    db_path = Path(db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        _init_schema(conn)
    finally:
        conn.close()


def _init_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    current_version = cursor.fetchone()[0] or 0
    if current_version >= SCHEMA_VERSION:
        logger.debug("Database schema up to date (version %s)", current_version)
        return

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS report_tables (
            table_name TEXT PRIMARY KEY,
            headers_json TEXT,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS report_rows (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            table_name TEXT NOT NULL,
            row_index INTEGER NOT NULL,
            values_json TEXT NOT NULL,
            UNIQUE(table_name, row_index)
        )
        """
    )

    conn.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()
    logger.info("Database schema initialized (version %s)", SCHEMA_VERSION)


class SqliteSink:
    """Stores each table's header and rows as JSON arrays."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        init_database(conn)

    async def ensure_exists(self, table_name: str) -> None:
        try:
            self.conn.execute(
                "INSERT OR IGNORE INTO report_tables (table_name) VALUES (?)",
                (table_name,),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise SinkError(table_name, str(exc)) from exc

    async def clear(self, table_name: str) -> None:
        try:
            self.conn.execute(
                "DELETE FROM report_rows WHERE table_name=?", (table_name,)
            )
            self.conn.execute(
                "UPDATE report_tables SET headers_json=NULL WHERE table_name=?",
                (table_name,),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise SinkError(table_name, str(exc)) from exc

    async def write(
        self,
        table_name: str,
        rows: Sequence[Sequence[Any]],
        headers: Optional[Sequence[str]] = None,
    ) -> None:
        try:
            self.conn.execute(
                """
                INSERT INTO report_tables (table_name, headers_json)
                VALUES (?, ?)
                ON CONFLICT(table_name)
                DO UPDATE SET
                    headers_json=excluded.headers_json,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (table_name, json.dumps(list(headers)) if headers else None),
            )
            self.conn.executemany(
                """
                INSERT OR REPLACE INTO report_rows (table_name, row_index, values_json)
                VALUES (?, ?, ?)
                """,
                [
                    (table_name, index, json.dumps(list(row), ensure_ascii=False))
                    for index, row in enumerate(rows)
                ],
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            raise SinkError(table_name, str(exc)) from exc

        logger.info("Data written to table: %s (%s rows)", table_name, len(rows))

    def read(self, table_name: str) -> tuple[Optional[list], list[list]]:
        """Return (headers, rows) for a stored table."""
        cursor = self.conn.execute(
            "SELECT headers_json FROM report_tables WHERE table_name=?",
            (table_name,),
        )
        found = cursor.fetchone()
        headers = json.loads(found[0]) if found and found[0] else None

        cursor = self.conn.execute(
            "SELECT values_json FROM report_rows WHERE table_name=? ORDER BY row_index",
            (table_name,),
        )
        return headers, [json.loads(row[0]) for row in cursor.fetchall()]

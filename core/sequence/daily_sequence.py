"""
Daily Invoice Sequence

Per-day counters behind the NNNNN part of invoice numbers:
- invoice_sequence: date_key (YYYY-MM-DD) → last issued value

The first call for a day returns 1, every later call the next integer.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

DB_PATH = Path(__file__).parent.parent.parent / "invoice_sequence.db"


class SequenceGenerator(Protocol):
    """Anything that hands out increasing per-day integers."""

    def get_sequence(self, date_key: str) -> int:
        ...


class InMemoryDailySequence:
    """Process-local sequence, for tests and single-process local runs."""

    def __init__(self, start: Optional[Dict[str, int]] = None):
        self._counters: Dict[str, int] = dict(start or {})
        self._lock = threading.Lock()

    def get_sequence(self, date_key: str) -> int:
        with self._lock:
            value = self._counters.get(date_key, 0) + 1
            self._counters[date_key] = value
            return value


class SqliteDailySequence:
    """Durable per-day sequence stored in SQLite.

    Each increment runs in its own immediate transaction, so concurrent
    processes sharing the file never receive the same value.
    """

    def __init__(self, db_path: Union[str, Path] = DB_PATH):
        self.db_path = Path(db_path)

    def get_db_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(str(self.db_path), timeout=10, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the sequence table if it does not exist."""
        conn = self.get_db_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invoice_sequence (
                    date_key TEXT PRIMARY KEY,
                    last_value INTEGER NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
        finally:
            conn.close()

    def get_sequence(self, date_key: str) -> int:
        conn = self.get_db_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT last_value FROM invoice_sequence WHERE date_key = ?",
                    (date_key,),
                ).fetchone()
                if row is None:
                    value = 1
                    conn.execute(
                        "INSERT INTO invoice_sequence (date_key, last_value) VALUES (?, ?)",
                        (date_key, value),
                    )
                else:
                    value = row["last_value"] + 1
                    conn.execute(
                        """
                        UPDATE invoice_sequence
                        SET last_value = ?, updated_at = CURRENT_TIMESTAMP
                        WHERE date_key = ?
                        """,
                        (value, date_key),
                    )
                conn.execute("COMMIT")
            except sqlite3.Error:
                conn.execute("ROLLBACK")
                raise
            return value
        finally:
            conn.close()

    def current(self, date_key: str) -> int:
        """Last value issued for date_key, 0 if none yet."""
        conn = self.get_db_connection()
        try:
            row = conn.execute(
                "SELECT last_value FROM invoice_sequence WHERE date_key = ?",
                (date_key,),
            ).fetchone()
            return row["last_value"] if row else 0
        finally:
            conn.close()

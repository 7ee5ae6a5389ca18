import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from adx.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Append-only event log (exchange, sequence number, name, JSON payload).
    2. Exchange metadata (address, owner, deployment settings).
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        logger.debug(f"SQLite store ready at {db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # seq is the exchange's own log index; ids are assigned here so
            # several exchanges (or reruns) can share one database
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exchange TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    payload TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_name ON events(name);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_exchange ON events(exchange, seq);")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS exchange_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    # =========================================================================
    # Events
    # =========================================================================

    def append_events(self, exchange: str, rows: List[Tuple[int, str, Dict[str, Any]]]):
        """Append (seq, name, payload) rows in one transaction."""
        conn = self._get_conn()
        with conn:
            conn.executemany(
                "INSERT INTO events (exchange, seq, name, payload) VALUES (?, ?, ?, ?)",
                [(exchange, seq, name, json.dumps(payload, sort_keys=True)) for seq, name, payload in rows]
            )

    def get_events(
        self,
        name: Optional[str] = None,
        exchange: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Events in insertion order, optionally filtered by name and exchange."""
        conn = self._get_conn()
        query = "SELECT id, exchange, seq, name, payload FROM events"
        clauses = []
        params: list = []
        if name:
            clauses.append("name = ?")
            params.append(name)
        if exchange:
            clauses.append("exchange = ?")
            params.append(exchange)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = conn.execute(query, params).fetchall()
        return [
            {
                "id": row["id"],
                "exchange": row["exchange"],
                "seq": row["seq"],
                "name": row["name"],
                "payload": json.loads(row["payload"]),
            }
            for row in rows
        ]

    def count_events(self, exchange: Optional[str] = None) -> int:
        conn = self._get_conn()
        if exchange:
            return conn.execute("SELECT COUNT(*) FROM events WHERE exchange = ?", (exchange,)).fetchone()[0]
        return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    # =========================================================================
    # Metadata
    # =========================================================================

    def set_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO exchange_state (key, value) VALUES (?, ?)",
                (key, value)
            )

    def get_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        row = conn.execute("SELECT value FROM exchange_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def close(self):
        """Close connection for current thread."""
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn

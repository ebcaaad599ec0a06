"""
Database connection management.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from .schema import init_schema

# Seconds a connection waits for another writer before raising "database is locked"
BUSY_TIMEOUT_SEC = 60.0


class DBManager:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._schema_ready = False

    def connect(self) -> sqlite3.Connection:
        """
        Returns the shared connection used for batch-level reads
        (processed-name/hash snapshots). Creates the schema on first use.
        """
        if self._conn:
            return self._conn

        logging.info(f"Connecting to database: {self.db_path}")
        self._conn = self._configure(sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SEC))
        self._ensure_schema(self._conn)
        return self._conn

    def open_connection(self) -> sqlite3.Connection:
        """
        Opens an independent connection for one unit of work.
        The caller owns it: commit/rollback and close.
        """
        conn = self._configure(sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SEC))
        self._ensure_schema(conn)
        return conn

    def _configure(self, conn: sqlite3.Connection) -> sqlite3.Connection:
        # WAL lets per-item writers proceed while batch readers hold snapshots
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA temp_store=MEMORY;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection):
        if not self._schema_ready:
            init_schema(conn)
            self._schema_ready = True

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

"""
SQLite ledger foundation - connection management, schema and health check.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from . import config


@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite connection in autocommit mode.

    Transactions are opened explicitly by the caller (BEGIN IMMEDIATE).
    """
    conn = sqlite3.connect(
        db_path or config.DB_PATH,
        timeout=config.STORE_BUSY_TIMEOUT_SEC,
        isolation_level=None,
    )
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = None):
    """Initialize the ledger with required tables."""
    config.ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Readers must not block a committing writer
        cursor.execute("PRAGMA journal_mode=WAL")

        # Keyed world state; version increments on every committed write
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS ledger (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # Append-only log of events emitted by committed transactions
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                tx_id TEXT NOT NULL,
                name TEXT NOT NULL,
                payload TEXT
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_name ON events(name)')


def health_check(db_path: str = None):
    """Check ledger health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return all(table in table_names for table in ['ledger', 'events'])
    except sqlite3.Error:
        return False

"""
Transactional key-value ledger over SQLite.

Each invocation runs inside one Transaction: reads are recorded with the
version they observed, writes and events are buffered, and commit applies
everything atomically under BEGIN IMMEDIATE after re-validating the read set.
A concurrent commit that touched any key we read makes our commit fail with
TransactionConflict and nothing is written. There are no internal retries.
"""

import copy
import json
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

from . import config
from .db import get_db, init_db, health_check
from .errors import TransactionConflict
from ..util.logging import logger


def _encode(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def _prefix_bounds(prefix: str) -> Tuple[str, str]:
    # Every key starting with prefix sorts in [prefix, prefix + U+10FFFF)
    return prefix, prefix + "\U0010ffff"


class Transaction:
    """One atomic unit of work against the ledger."""

    def __init__(self, conn: sqlite3.Connection, tx_id: str):
        self.conn = conn
        self.tx_id = tx_id
        self._read_versions: Dict[str, int] = {}
        self._read_cache: Dict[str, Any] = {}
        self._prefix_reads: Dict[str, set] = {}
        self._writes: Dict[str, Any] = {}
        self._events: List[Tuple[str, Dict[str, Any]]] = []

    def _fetch(self, key: str) -> Tuple[Optional[Any], int]:
        row = self.conn.execute(
            "SELECT value, version FROM ledger WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None, 0
        return json.loads(row[0]), row[1]

    def get(self, key: str) -> Optional[Any]:
        """Read a value, preferring this transaction's own pending write."""
        if key in self._writes:
            return copy.deepcopy(self._writes[key])

        if key not in self._read_versions:
            value, version = self._fetch(key)
            self._read_versions[key] = version
            self._read_cache[key] = value

        return copy.deepcopy(self._read_cache[key])

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def put(self, key: str, value: Any) -> None:
        """Buffer a write; it becomes visible to others only on commit."""
        if value is None:
            raise ValueError("ledger values cannot be None")
        self._writes[key] = copy.deepcopy(value)

    def query_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        """Range read over every key starting with prefix, ordered by key."""
        low, high = _prefix_bounds(prefix)
        rows = self.conn.execute(
            "SELECT key, value, version FROM ledger WHERE key >= ? AND key < ? ORDER BY key",
            (low, high)
        ).fetchall()

        results = {}
        for key, raw, version in rows:
            if key not in self._read_versions:
                self._read_versions[key] = version
                self._read_cache[key] = json.loads(raw)
            if self._read_cache[key] is not None:
                results[key] = self._read_cache[key]

        self._prefix_reads[prefix] = {key for key, _, _ in rows}

        for key, value in self._writes.items():
            if key.startswith(prefix):
                results[key] = value

        return [(key, copy.deepcopy(results[key])) for key in sorted(results)]

    def set_event(self, name: str, payload: Dict[str, Any]) -> None:
        """Attach an event that is appended to the event log on commit."""
        self._events.append((name, copy.deepcopy(payload)))

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    def _conflicting_keys(self) -> List[str]:
        conflicts = []
        for key, seen_version in self._read_versions.items():
            row = self.conn.execute(
                "SELECT version FROM ledger WHERE key = ?", (key,)
            ).fetchone()
            current = row[0] if row else 0
            if current != seen_version:
                conflicts.append(key)

        for prefix, seen_keys in self._prefix_reads.items():
            low, high = _prefix_bounds(prefix)
            rows = self.conn.execute(
                "SELECT key FROM ledger WHERE key >= ? AND key < ?", (low, high)
            ).fetchall()
            if {r[0] for r in rows} != seen_keys:
                conflicts.append(prefix + "*")

        return conflicts

    def commit(self) -> None:
        """Validate the read set and apply all buffered writes and events."""
        if not self._writes and not self._events:
            return

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            conflicts = self._conflicting_keys()
            if conflicts:
                raise TransactionConflict(
                    f"Concurrent update to {', '.join(conflicts)}; resubmit the transaction",
                    keys=conflicts
                )

            for key, value in self._writes.items():
                self.conn.execute(
                    '''
                    INSERT INTO ledger (key, value, version) VALUES (?, ?, 1)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        version = ledger.version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    ''',
                    (key, _encode(value))
                )

            for name, payload in self._events:
                self.conn.execute(
                    "INSERT INTO events (tx_id, name, payload) VALUES (?, ?, ?)",
                    (self.tx_id, name, _encode(payload))
                )

            self.conn.execute("COMMIT")
        except TransactionConflict as e:
            self.conn.execute("ROLLBACK")
            logger.log_conflict(self.tx_id, e.keys)
            raise
        except Exception:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise

        logger.log_commit(self.tx_id, len(self._writes), len(self._events))
        for name, _ in self._events:
            logger.log_event_emitted(name, self.tx_id)


class LedgerStore:
    """SQLite-backed transactional key-value store."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.DB_PATH
        init_db(self.db_path)

    @contextmanager
    def transaction(self) -> Generator[Transaction, None, None]:
        """Run a block as one transaction.

        An exception raised inside the block discards every buffered write.
        """
        tx_id = uuid.uuid4().hex
        with get_db(self.db_path) as conn:
            tx = Transaction(conn, tx_id)
            yield tx
            tx.commit()

    def get(self, key: str) -> Optional[Any]:
        with get_db(self.db_path) as conn:
            row = conn.execute("SELECT value FROM ledger WHERE key = ?", (key,)).fetchone()
            return json.loads(row[0]) if row else None

    def version(self, key: str) -> int:
        with get_db(self.db_path) as conn:
            row = conn.execute("SELECT version FROM ledger WHERE key = ?", (key,)).fetchone()
            return row[0] if row else 0

    def query_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        low, high = _prefix_bounds(prefix)
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT key, value FROM ledger WHERE key >= ? AND key < ? ORDER BY key",
                (low, high)
            ).fetchall()
            return [(key, json.loads(raw)) for key, raw in rows]

    def count(self, prefix: str = None) -> int:
        with get_db(self.db_path) as conn:
            if prefix:
                low, high = _prefix_bounds(prefix)
                row = conn.execute(
                    "SELECT COUNT(*) FROM ledger WHERE key >= ? AND key < ?", (low, high)
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM ledger").fetchone()
            return row[0] if row else 0

    def list_events(self, limit: int = 20, name: str = None) -> List[Dict[str, Any]]:
        """List emitted events, most recent first."""
        if limit <= 0:
            return []

        with get_db(self.db_path) as conn:
            if name:
                rows = conn.execute(
                    "SELECT id, ts, tx_id, name, payload FROM events WHERE name = ? ORDER BY id DESC LIMIT ?",
                    (name, limit)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT id, ts, tx_id, name, payload FROM events ORDER BY id DESC LIMIT ?",
                    (limit,)
                ).fetchall()

        return [
            {
                "id": event_id,
                "ts": ts,
                "tx_id": tx_id,
                "name": event_name,
                "payload": json.loads(payload) if payload else {}
            }
            for event_id, ts, tx_id, event_name, payload in rows
        ]

    def healthy(self) -> bool:
        return health_check(self.db_path)

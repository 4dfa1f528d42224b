"""indexer.core.database

The journal and the snapshot live side by side.

- ``events``: every log the indexer accepted into its stream, keyed by chain position.
  This is the replay source for rebuilds and reorg recovery.
- ``entities``: the derived snapshot. One JSON document per (entity type, key).
- ``watched_sources``: shop contracts discovered at runtime.
- ``cursors``: last fully applied chain position per partition.
- ``audit_log``: rejected and skipped events, for operators.

Derived tables can always be dropped and rebuilt from ``events``.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from indexer.core.events import ChainEvent, canonical_json
from indexer.core.exceptions import StorageError

SCHEMA_VERSION = 1

SCHEMA = """
-- ============================================================
-- Schema Version Tracking
-- ============================================================
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT DEFAULT (datetime('now'))
);

-- ============================================================
-- Event Journal (chain order, append-only)
-- ============================================================
CREATE TABLE IF NOT EXISTS events (
    dedupe_key TEXT PRIMARY KEY,
    block_number INTEGER NOT NULL,
    transaction_index INTEGER NOT NULL,
    log_index INTEGER NOT NULL,
    block_timestamp INTEGER NOT NULL,
    transaction_hash TEXT,
    address TEXT NOT NULL,
    name TEXT NOT NULL,
    args TEXT NOT NULL,
    payload_hash TEXT NOT NULL,
    outcome TEXT NOT NULL,
    ingested_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_events_position
    ON events(block_number, transaction_index, log_index);
CREATE INDEX IF NOT EXISTS idx_events_address ON events(address);

-- ============================================================
-- Derived Entities (projection from events)
-- ============================================================
CREATE TABLE IF NOT EXISTS entities (
    entity_type TEXT NOT NULL,
    id TEXT NOT NULL,
    shop TEXT,
    data TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    PRIMARY KEY (entity_type, id)
);

CREATE INDEX IF NOT EXISTS idx_entities_shop ON entities(entity_type, shop);

-- ============================================================
-- Dynamic Sources
-- ============================================================
CREATE TABLE IF NOT EXISTS watched_sources (
    address TEXT PRIMARY KEY,
    role TEXT NOT NULL,
    start_block INTEGER NOT NULL,
    registered_at TEXT DEFAULT (datetime('now'))
);

-- ============================================================
-- Stream Cursors
-- ============================================================
CREATE TABLE IF NOT EXISTS cursors (
    partition TEXT PRIMARY KEY,
    block_number INTEGER NOT NULL,
    transaction_index INTEGER NOT NULL,
    log_index INTEGER NOT NULL,
    updated_at TEXT DEFAULT (datetime('now'))
);

-- ============================================================
-- Audit Log
-- ============================================================
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts TEXT DEFAULT (datetime('now')),
    action TEXT NOT NULL,
    component TEXT,
    dedupe_key TEXT,
    block_number INTEGER,
    details TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_block ON audit_log(block_number);
"""


@dataclass(frozen=True, slots=True)
class EntityRow:
    entity_type: str
    id: str
    shop: str | None
    data: dict[str, Any]
    block_number: int


@dataclass(frozen=True, slots=True)
class AuditRow:
    action: str
    component: str
    details: dict[str, Any]
    dedupe_key: str | None = None
    block_number: int | None = None


@dataclass
class Database:
    """SQLite journal + snapshot store."""

    db_path: Path

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.executescript(SCHEMA)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA synchronous=NORMAL")
            self.conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One atomic write. Any sqlite failure surfaces as StorageError."""

        with self._lock:
            try:
                with self.conn:
                    yield self.conn
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    # -----------------
    # Entities
    # -----------------

    def get_entity(self, entity_type: str, entity_id: str) -> dict[str, Any] | None:
        row = self.conn.execute(
            "SELECT data FROM entities WHERE entity_type = ? AND id = ?",
            (str(entity_type), entity_id),
        ).fetchone()
        return None if row is None else json.loads(row["data"])

    def list_entities(
        self,
        entity_type: str,
        *,
        shop: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        q = "SELECT data FROM entities WHERE entity_type = ?"
        params: list[Any] = [str(entity_type)]
        if shop is not None:
            q += " AND shop = ?"
            params.append(shop)
        q += " ORDER BY block_number ASC, id ASC"
        if limit is not None:
            q += " LIMIT ?"
            params.append(limit)
        rows = self.conn.execute(q, tuple(params)).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def find_entities(self, entity_type: str, *, field: str, value: str) -> list[dict[str, Any]]:
        """Match a top-level JSON string field, typically a reference key."""

        rows = self.conn.execute(
            "SELECT data FROM entities WHERE entity_type = ? AND json_extract(data, ?) = ? "
            "ORDER BY block_number ASC, id ASC",
            (str(entity_type), f"$.{field}", value),
        ).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def search_entities(
        self,
        entity_type: str,
        *,
        field: str,
        text: str,
        limit: int,
        active_only: bool = False,
    ) -> list[dict[str, Any]]:
        """Case-insensitive substring match on a top-level JSON string field."""

        needle = text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        q = (
            "SELECT data FROM entities WHERE entity_type = ? "
            "AND lower(json_extract(data, ?)) LIKE ? ESCAPE '\\'"
        )
        if active_only:
            q += " AND json_extract(data, '$.active') = 1"
        q += " ORDER BY block_number ASC, id ASC LIMIT ?"
        rows = self.conn.execute(
            q, (str(entity_type), f"$.{field}", f"%{needle}%", limit)
        ).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def count_entities(self, entity_type: str) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM entities WHERE entity_type = ?", (str(entity_type),)
        ).fetchone()
        return int(row[0])

    @staticmethod
    def _upsert_entities(conn: sqlite3.Connection, rows: Iterable[EntityRow]) -> None:
        conn.executemany(
            """
            INSERT INTO entities (entity_type, id, shop, data, block_number)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(entity_type, id) DO UPDATE SET
                shop = excluded.shop,
                data = excluded.data,
                block_number = excluded.block_number
            """,
            [
                (str(r.entity_type), r.id, r.shop, canonical_json(r.data), r.block_number)
                for r in rows
            ],
        )

    # -----------------
    # Journal
    # -----------------

    def get_journal_hash(self, dedupe_key: str) -> str | None:
        row = self.conn.execute(
            "SELECT payload_hash FROM events WHERE dedupe_key = ?", (dedupe_key,)
        ).fetchone()
        return None if row is None else str(row[0])

    def iter_journal(self) -> Iterator[ChainEvent]:
        rows = self.conn.execute(
            "SELECT * FROM events ORDER BY block_number ASC, transaction_index ASC, log_index ASC"
        ).fetchall()
        for r in rows:
            yield self._row_to_event(r)

    def journal_outcomes(self, *, limit: int = 100) -> list[tuple[str, str, str]]:
        rows = self.conn.execute(
            "SELECT dedupe_key, name, outcome FROM events "
            "ORDER BY block_number DESC, transaction_index DESC, log_index DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [(str(r[0]), str(r[1]), str(r[2])) for r in rows]

    def count_journal(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM events").fetchone()[0])

    @staticmethod
    def _insert_journal(conn: sqlite3.Connection, event: ChainEvent, *, outcome: str) -> None:
        conn.execute(
            """
            INSERT INTO events (
                dedupe_key, block_number, transaction_index, log_index, block_timestamp,
                transaction_hash, address, name, args, payload_hash, outcome
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(dedupe_key) DO UPDATE SET outcome = excluded.outcome
            """,
            (
                event.dedupe_key(),
                event.block_number,
                event.transaction_index,
                event.log_index,
                event.block_timestamp,
                event.transaction_hash,
                event.address,
                event.name,
                canonical_json(event.args),
                event.payload_hash(),
                outcome,
            ),
        )

    def truncate_journal(self, *, from_block: int) -> int:
        """Drop journal rows at or above ``from_block`` (orphaned by a reorg)."""

        with self.transaction() as conn:
            cur = conn.execute("DELETE FROM events WHERE block_number >= ?", (from_block,))
        return cur.rowcount

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> ChainEvent:
        return ChainEvent(
            address=str(row["address"]),
            name=str(row["name"]),
            args=json.loads(row["args"]),
            block_number=int(row["block_number"]),
            block_timestamp=int(row["block_timestamp"]),
            transaction_hash=str(row["transaction_hash"] or ""),
            transaction_index=int(row["transaction_index"]),
            log_index=int(row["log_index"]),
        )

    # -----------------
    # Sources
    # -----------------

    def load_watches(self) -> list[tuple[str, str, int]]:
        rows = self.conn.execute(
            "SELECT address, role, start_block FROM watched_sources ORDER BY start_block ASC, address ASC"
        ).fetchall()
        return [(str(r[0]), str(r[1]), int(r[2])) for r in rows]

    @staticmethod
    def _insert_watches(conn: sqlite3.Connection, watches: Iterable[tuple[str, str, int]]) -> None:
        conn.executemany(
            "INSERT OR IGNORE INTO watched_sources (address, role, start_block) VALUES (?, ?, ?)",
            list(watches),
        )

    # -----------------
    # Cursor
    # -----------------

    def get_cursor(self, partition: str) -> tuple[int, int, int] | None:
        row = self.conn.execute(
            "SELECT block_number, transaction_index, log_index FROM cursors WHERE partition = ?",
            (partition,),
        ).fetchone()
        return None if row is None else (int(row[0]), int(row[1]), int(row[2]))

    @staticmethod
    def _set_cursor(conn: sqlite3.Connection, partition: str, position: tuple[int, int, int]) -> None:
        conn.execute(
            """
            INSERT INTO cursors (partition, block_number, transaction_index, log_index, updated_at)
            VALUES (?, ?, ?, ?, datetime('now'))
            ON CONFLICT(partition) DO UPDATE SET
                block_number = excluded.block_number,
                transaction_index = excluded.transaction_index,
                log_index = excluded.log_index,
                updated_at = excluded.updated_at
            """,
            (partition, *position),
        )

    # -----------------
    # Audit
    # -----------------

    @staticmethod
    def _insert_audit(conn: sqlite3.Connection, rows: Iterable[AuditRow]) -> None:
        conn.executemany(
            """
            INSERT INTO audit_log (action, component, dedupe_key, block_number, details)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (r.action, r.component, r.dedupe_key, r.block_number, canonical_json(r.details))
                for r in rows
            ],
        )

    def get_audit(self, *, action: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        q = "SELECT action, component, dedupe_key, block_number, details FROM audit_log"
        params: list[Any] = []
        if action is not None:
            q += " WHERE action = ?"
            params.append(action)
        q += " ORDER BY id ASC LIMIT ?"
        params.append(limit)
        rows = self.conn.execute(q, tuple(params)).fetchall()
        return [
            {
                "action": str(r["action"]),
                "component": r["component"],
                "dedupe_key": r["dedupe_key"],
                "block_number": r["block_number"],
                "details": json.loads(r["details"] or "{}"),
            }
            for r in rows
        ]

    # -----------------
    # Commit / reset
    # -----------------

    # Replay re-commits existing journal rows; only the outcome is refreshed.
    def commit_event(
        self,
        *,
        event: ChainEvent,
        outcome: str,
        partition: str,
        entities: Iterable[EntityRow] = (),
        watches: Iterable[tuple[str, str, int]] = (),
        audit: Iterable[AuditRow] = (),
    ) -> None:
        """Persist one event's full effect: snapshot rows, watches, journal, cursor."""

        with self.transaction() as conn:
            self._upsert_entities(conn, entities)
            self._insert_watches(conn, watches)
            self._insert_audit(conn, audit)
            self._insert_journal(conn, event, outcome=outcome)
            self._set_cursor(conn, partition, event.position)

    def reset_derived(self) -> None:
        """Clear everything that replay regenerates. The journal is kept."""

        with self.transaction() as conn:
            conn.execute("DELETE FROM entities")
            conn.execute("DELETE FROM watched_sources")
            conn.execute("DELETE FROM cursors")
            conn.execute("DELETE FROM audit_log")

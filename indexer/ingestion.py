"""indexer.ingestion

The ordered ingest loop.

One event at a time, to completion:
- dedupe against the journal by chain position (same payload: no-op)
- refuse anything at or behind the cursor that the journal has never seen
- dispatch into a fresh unit of work
- commit snapshot rows, staged watches, audit rows, journal row and cursor together

The journal is the source of truth. ``rebuild`` drops every derived table and replays
it; ``handle_reorg`` first cuts the journal at the orphaned block.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from typing import Any

from indexer.core.config import Config
from indexer.core.database import Database
from indexer.core.events import ChainEvent
from indexer.core.exceptions import DedupeConflictError, OutOfOrderError, StorageError
from indexer.core.sources import SourceRegistry
from indexer.core.store import EntityStore
from indexer.dispatcher import Dispatcher, DispatchOutcome, DispatchResult
from indexer.handlers.registry import discover

_log = logging.getLogger(__name__)


@dataclass
class IngestStats:
    applied: int = 0
    ignored: int = 0
    rejected: int = 0
    skipped: int = 0
    duplicate: int = 0

    def record(self, outcome: DispatchOutcome) -> None:
        key = str(outcome)
        setattr(self, key, getattr(self, key) + 1)

    @property
    def total(self) -> int:
        return self.applied + self.ignored + self.rejected + self.skipped + self.duplicate

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class Indexer:
    """Drives a single ordered event stream into the snapshot."""

    db: Database
    sources: SourceRegistry
    partition: str = "main"
    start_block: int = 0
    logger: logging.Logger = field(default_factory=lambda: _log)

    def __post_init__(self) -> None:
        self._lock = threading.RLock()
        discover()
        self.dispatcher = Dispatcher(self.sources, logger=self.logger)
        restored = self.sources.load(self.db)
        if restored:
            self.logger.info("watches_restored", extra={"count": restored, "partition": self.partition})

    @classmethod
    def from_config(cls, config: Config) -> Indexer:
        return cls(
            db=Database(config.db_path),
            sources=SourceRegistry.from_config(config.sources),
            partition=config.indexer.partition,
            start_block=config.sources.start_block,
        )

    def close(self) -> None:
        self.db.close()

    @property
    def cursor(self) -> tuple[int, int, int] | None:
        return self.db.get_cursor(self.partition)

    # -----------------
    # Ingest
    # -----------------

    def ingest(self, event: ChainEvent) -> DispatchResult:
        with self._lock:
            if event.block_number < self.start_block:
                return DispatchResult(DispatchOutcome.IGNORED, reason="before_start_block")

            key = event.dedupe_key()
            seen = self.db.get_journal_hash(key)
            if seen is not None:
                if seen == event.payload_hash():
                    return DispatchResult(DispatchOutcome.DUPLICATE)
                self.logger.error("dedupe_conflict", extra={"position": key, "event": event.name})
                raise DedupeConflictError(
                    f"event at {key} differs from the journaled one; run reorg recovery"
                )

            cursor = self.cursor
            if cursor is not None and event.position <= cursor:
                raise OutOfOrderError(f"event at {key} is at or behind cursor {cursor}")

            return self._apply(event)

    def ingest_many(self, events: Iterable[ChainEvent]) -> IngestStats:
        """Ingest in order. Fatal errors propagate and stop the batch."""

        stats = IngestStats()
        for event in events:
            stats.record(self.ingest(event).outcome)
        self.logger.info("ingest_batch_complete", extra={"partition": self.partition, **stats.as_dict()})
        return stats

    def _apply(self, event: ChainEvent) -> DispatchResult:
        store = EntityStore(self.db)
        try:
            result = self.dispatcher.dispatch(event, store)
            audit = result.audit_row(event)
            self.db.commit_event(
                event=event,
                outcome=str(result.outcome),
                partition=self.partition,
                entities=store.staged_rows(block_number=event.block_number),
                watches=self.sources.pending_rows(),
                audit=[audit] if audit is not None else [],
            )
        except StorageError as e:
            self.sources.discard_pending()
            self.logger.error(
                "storage_failure",
                extra={"position": event.dedupe_key(), "event": event.name, "error": str(e)},
            )
            raise
        except Exception:
            self.sources.discard_pending()
            raise

        self.sources.commit_pending()
        return result

    # -----------------
    # Replay
    # -----------------

    def rebuild(self) -> IngestStats:
        """Drop derived state and replay the whole journal in chain order."""

        with self._lock:
            self.db.reset_derived()
            self.sources.clear_dynamic()
            stats = IngestStats()
            for event in self.db.iter_journal():
                stats.record(self._apply(event).outcome)
            self.logger.info("rebuild_complete", extra={"partition": self.partition, **stats.as_dict()})
            return stats

    def handle_reorg(self, *, from_block: int) -> int:
        """Forget every journaled event at or above ``from_block`` and replay the rest.

        Returns the number of journal rows dropped.
        """

        with self._lock:
            dropped = self.db.truncate_journal(from_block=from_block)
            self.logger.warning("reorg_rollback", extra={"from_block": from_block, "dropped": dropped})
            self.rebuild()
            return dropped

    def status(self) -> dict[str, Any]:
        cursor = self.cursor
        return {
            "partition": self.partition,
            "cursor": list(cursor) if cursor is not None else None,
            "journal_size": self.db.count_journal(),
            "watched_shops": len(self.sources.watched()),
        }

"""indexer.core.exceptions

Errors are part of the interface.

Most per-event failures are local: they are logged and recorded, and the stream moves
on. Only storage failures halt the stream.
"""

from __future__ import annotations


class IndexerError(Exception):
    """Base exception for the indexer."""


class ConfigError(IndexerError):
    """Configuration is missing, invalid, or inconsistent."""


class EventStoreError(IndexerError):
    """Event store failures: schema, IO, integrity, or invariants."""


class StorageError(EventStoreError):
    """A write could not be persisted. Fatal for the stream position."""


class DedupeConflictError(EventStoreError):
    """A chain position was redelivered with a different payload."""


class OutOfOrderError(EventStoreError):
    """An unseen event arrived at or behind the committed cursor."""


class DispatchError(IndexerError):
    """An event could not be routed to a handler."""


class UnregisteredSourceError(DispatchError):
    """Shop-scoped event from an address that is not being watched."""


class PayloadValidationError(DispatchError):
    """Event arguments do not match the schema for its type."""


class HandlerError(IndexerError):
    """A handler declined to apply an event."""


class OrphanReferenceError(HandlerError):
    """The event targets a parent entity that does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"missing {kind}: {key}")
        self.kind = kind
        self.key = key

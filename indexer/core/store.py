"""indexer.core.store

Entity store: a unit of work over the snapshot tables.

One store instance covers exactly one event. Writes are staged in an overlay that
``get`` reads first (read-your-writes), and nothing reaches SQLite until the
indexer commits the overlay together with the journal row and the cursor. A failed
event leaves no trace.
"""

from __future__ import annotations

import sqlite3
from typing import TypeVar

from indexer.core.database import Database, EntityRow
from indexer.core.exceptions import StorageError
from indexer.core.models import ENTITY_MODELS, EntityType, Record

R = TypeVar("R", bound=Record)

_MODEL_TYPES: dict[type[Record], EntityType] = {m: et for et, m in ENTITY_MODELS.items()}


def entity_type_of(record: Record | type[Record]) -> EntityType:
    cls = record if isinstance(record, type) else type(record)
    try:
        return _MODEL_TYPES[cls]
    except KeyError as e:
        raise TypeError(f"not an entity model: {cls.__name__}") from e


class EntityStore:
    def __init__(self, db: Database) -> None:
        self._db = db
        self._overlay: dict[tuple[EntityType, str], Record] = {}

    def get(self, entity_type: EntityType, key: str) -> Record | None:
        staged = self._overlay.get((entity_type, key))
        if staged is not None:
            return staged
        try:
            data = self._db.get_entity(entity_type, key)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        if data is None:
            return None
        return ENTITY_MODELS[entity_type].model_validate(data)

    def put(self, entity_type: EntityType, key: str, record: Record) -> None:
        if record.id != key:
            raise ValueError(f"record id {record.id!r} does not match key {key!r}")
        expected = ENTITY_MODELS[entity_type]
        if not isinstance(record, expected):
            raise TypeError(f"{entity_type} expects {expected.__name__}, got {type(record).__name__}")
        self._overlay[(entity_type, key)] = record

    def load(self, model: type[R], key: str) -> R | None:
        """Typed ``get``."""

        return self.get(entity_type_of(model), key)  # type: ignore[return-value]

    def save(self, record: Record) -> None:
        """Typed ``put``: the key is the record's own id."""

        self.put(entity_type_of(record), record.id, record)

    def exists(self, model: type[Record], key: str) -> bool:
        return self.get(entity_type_of(model), key) is not None

    @property
    def dirty(self) -> bool:
        return bool(self._overlay)

    def staged_rows(self, *, block_number: int) -> list[EntityRow]:
        return [
            EntityRow(
                entity_type=str(et),
                id=key,
                shop=record.shop_key,
                data=record.model_dump(mode="json"),
                block_number=block_number,
            )
            for (et, key), record in self._overlay.items()
        ]

    def discard(self) -> None:
        self._overlay.clear()

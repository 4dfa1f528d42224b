from __future__ import annotations

import pytest

from indexer.core.database import Database
from indexer.core.events import ChainEvent
from indexer.core.exceptions import DedupeConflictError, OutOfOrderError, StorageError
from indexer.core.models import Product, Shop
from indexer.core.sources import SourceRegistry
from indexer.core.store import EntityStore
from indexer.dispatcher import DispatchOutcome
from indexer.ingestion import Indexer
from tests._chain import HUB, SHOP_A, SHOP_B


def test_redelivery_is_a_silent_duplicate(indexer, chain):
    ev = chain.shop_created()
    assert indexer.ingest(ev).outcome == DispatchOutcome.APPLIED
    assert indexer.ingest(ev).outcome == DispatchOutcome.DUPLICATE
    assert indexer.db.count_journal() == 1


def test_same_position_with_different_payload_is_a_conflict(indexer, chain):
    ev = chain.shop_created(name="Acme")
    indexer.ingest(ev)
    changed = ev.model_copy(update={"args": {**ev.args, "name": "Other"}})
    with pytest.raises(DedupeConflictError):
        indexer.ingest(changed)


def test_unseen_event_behind_cursor_is_out_of_order(indexer, chain):
    indexer.ingest(chain.shop_created(block=200))
    with pytest.raises(OutOfOrderError):
        indexer.ingest(chain.shop_created(SHOP_B, block=150))
    assert indexer.cursor == (200, 0, 0)


def test_events_before_start_block_are_ignored(db, sources, chain):
    indexer = Indexer(db=db, sources=sources, start_block=500)
    result = indexer.ingest(chain.shop_created(block=400))
    assert result.outcome == DispatchOutcome.IGNORED
    assert db.count_journal() == 0
    assert indexer.cursor is None


def test_every_outcome_advances_the_cursor(indexer, chain):
    indexer.ingest(chain(SHOP_B, "ProductCreated", productId=1, name="Mug", price=1, stock=1))
    assert indexer.cursor == (chain.block, 0, 0)
    assert indexer.db.get_audit(action="rejected.unregistered_source")


def test_ingest_many_counts_outcomes(indexer, chain):
    created = chain.shop_created()
    stats = indexer.ingest_many(
        [
            created,
            created,
            chain(SHOP_A, "ProductCreated", productId=1, name="Mug", price=1, stock=1),
            chain(SHOP_A, "VariantAdded", productId=2, variantId=1, name="XL", price=1, stock=1),
            chain(SHOP_B, "ProductCreated", productId=1, name="Mug", price=1, stock=1),
            chain(HUB, "OwnershipTransferred"),
        ]
    )
    assert stats.as_dict() == {"applied": 2, "ignored": 1, "rejected": 1, "skipped": 1, "duplicate": 1}
    assert stats.total == 6


def test_storage_failure_halts_cursor_and_drops_staged_watch(indexer, chain, monkeypatch):
    first = chain.shop_created(SHOP_A)
    indexer.ingest(first)

    def fail(**kwargs):
        raise StorageError("disk full")

    monkeypatch.setattr(indexer.db, "commit_event", fail)
    with pytest.raises(StorageError):
        indexer.ingest(chain.shop_created(SHOP_B))

    assert indexer.cursor == first.position
    assert not indexer.sources.is_watched(SHOP_B)
    assert EntityStore(indexer.db).load(Shop, SHOP_B) is None


def test_restart_resumes_watches_and_cursor(temp_dir, chain):
    db = Database(temp_dir / "index.db")
    first = Indexer(db=db, sources=SourceRegistry(hub=HUB))
    first.ingest(chain.shop_created(SHOP_A))
    cursor = first.cursor
    first.close()

    db2 = Database(temp_dir / "index.db")
    second = Indexer(db=db2, sources=SourceRegistry(hub=HUB))
    assert second.cursor == cursor
    assert second.sources.is_watched(SHOP_A)
    result = second.ingest(chain(SHOP_A, "ProductCreated", productId=1, name="Mug", price=1, stock=1))
    assert result.outcome == DispatchOutcome.APPLIED
    second.close()


def test_rebuild_reproduces_the_snapshot(indexer, chain):
    indexer.ingest(chain.shop_created())
    indexer.ingest(chain(SHOP_A, "ProductCreated", productId=1, name="Mug", price=1000, stock=10))
    indexer.ingest(chain(SHOP_A, "ProductUpdated", productId=1, price=1200, stock=8))
    before = indexer.db.list_entities("product")
    cursor = indexer.cursor

    stats = indexer.rebuild()

    assert stats.applied == 3
    assert indexer.db.list_entities("product") == before
    assert indexer.cursor == cursor
    assert indexer.sources.watched() == [SHOP_A]


def test_handle_reorg_drops_orphaned_blocks(indexer, chain):
    indexer.ingest(chain.shop_created(block=100))
    indexer.ingest(chain(SHOP_A, "ProductCreated", block=101, productId=1, name="Mug", price=1000, stock=10))
    indexer.ingest(chain(SHOP_A, "ProductUpdated", block=102, productId=1, price=1, stock=1))

    assert indexer.handle_reorg(from_block=102) == 1

    product = EntityStore(indexer.db).load(Product, f"{SHOP_A}-product-1")
    assert product.price == 1000
    assert indexer.cursor == (101, 0, 0)

    # The replacement segment can now be ingested at the same positions.
    replacement = chain(SHOP_A, "ProductUpdated", block=102, productId=1, price=900, stock=9)
    assert indexer.ingest(replacement).outcome == DispatchOutcome.APPLIED
    assert EntityStore(indexer.db).load(Product, f"{SHOP_A}-product-1").price == 900


def test_reorg_below_shop_creation_forgets_the_watch(indexer, chain):
    indexer.ingest(chain.shop_created(block=100))
    indexer.handle_reorg(from_block=100)
    assert not indexer.sources.is_watched(SHOP_A)
    assert indexer.cursor is None
    assert indexer.db.load_watches() == []


def test_status(indexer, chain):
    indexer.ingest(chain.shop_created())
    status = indexer.status()
    assert status["partition"] == "main"
    assert status["journal_size"] == 1
    assert status["watched_shops"] == 1
    assert status["cursor"] == [chain.block, 0, 0]


def test_from_config(test_config):
    indexer = Indexer.from_config(test_config)
    assert indexer.db.db_path == test_config.db_path
    assert indexer.partition == "main"
    indexer.close()


def test_chain_event_copy_keeps_position():
    ev = ChainEvent(address=HUB, name="ShopCreated", block_number=3, log_index=2)
    assert ev.model_copy().dedupe_key() == "3:0:2"

from __future__ import annotations

from indexer.core.models import Protocol, Shop
from indexer.core.store import EntityStore
from indexer.dispatcher import DispatchOutcome
from tests._chain import HUB, SHOP_A, SHOP_B, apply_event


def test_shop_created_writes_shop_protocol_and_watch(db, sources, chain):
    ev = chain.shop_created(SHOP_A, agentId=7)
    assert apply_event(db, sources, ev).outcome == DispatchOutcome.APPLIED

    store = EntityStore(db)
    shop = store.load(Shop, SHOP_A)
    assert shop.name == "Acme"
    assert shop.metadata_uri == "ipfs://shop"
    assert shop.agent_id == 7
    assert shop.agent == "7"
    assert shop.created_at == ev.block_timestamp

    protocol = store.load(Protocol, "protocol")
    assert protocol.hub == HUB
    assert protocol.shop_count == 1
    assert db.load_watches() == [(SHOP_A, "shop", ev.block_number)]


def test_shop_count_only_counts_new_shops(db, sources, chain):
    first = chain.shop_created(SHOP_A)
    apply_event(db, sources, first)
    apply_event(db, sources, first)
    apply_event(db, sources, chain.shop_created(SHOP_B, name="Bits"))

    assert EntityStore(db).load(Protocol, "protocol").shop_count == 2
    assert len(db.load_watches()) == 2


def test_shop_created_replay_keeps_payment_split(db, sources, chain):
    created = chain.shop_created(SHOP_A)
    apply_event(db, sources, created)
    apply_event(db, sources, chain(SHOP_A, "PaymentSplitUpdated", splitAddress="0x00000000000000000000000000000000000000e0"))
    apply_event(db, sources, created)

    assert EntityStore(db).load(Shop, SHOP_A).payment_split_address == "0x00000000000000000000000000000000000000e0"


def test_protocol_fee_updated(db, sources, chain):
    apply_event(db, sources, chain(HUB, "ProtocolFeeUpdated", newFee=250))
    protocol = EntityStore(db).load(Protocol, "protocol")
    assert protocol.protocol_fee == 250
    assert protocol.shop_count == 0

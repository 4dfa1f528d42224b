"""End-to-end walkthroughs of the documented behaviours, through the ingest loop."""

from __future__ import annotations

import logging

import pytest

from indexer.core import ids
from indexer.core.models import Order, Variant
from indexer.core.store import EntityStore
from indexer.dispatcher import DispatchOutcome
from indexer.query import QueryService
from tests._chain import CUSTOMER, OWNER, REPUTATION, SHOP_A, apply_event

pytestmark = pytest.mark.integration

CLIENT_D = "0x00000000000000000000000000000000000000dd"


def test_new_shop_is_empty(indexer, chain):
    indexer.ingest(chain.shop_created(SHOP_A, owner=OWNER, name="Acme"))

    shop = QueryService(indexer.db).get_shop(SHOP_A)
    assert shop["owner"] == OWNER
    assert shop["products"] == []
    assert shop["orders"] == []


def test_product_update_overwrites_price_and_stock(indexer, chain):
    indexer.ingest(chain.shop_created(SHOP_A))
    indexer.ingest(chain(SHOP_A, "ProductCreated", productId=1, name="Mug", price=1000, stock=10, categoryId=0))
    indexer.ingest(chain(SHOP_A, "ProductUpdated", productId=1, price=1200, stock=8, metadataURI=""))

    product = QueryService(indexer.db).get_product(SHOP_A, 1)
    assert (product["price"], product["stock"], product["active"]) == (1200, 8, True)


def test_replayed_fulfilment_does_not_double_advance(indexer, chain, sources):
    indexer.ingest(chain.shop_created(SHOP_A))
    indexer.ingest(chain(SHOP_A, "OrderCreated", orderId=5, customer=CUSTOMER, totalAmount=1200))
    fulfilled = chain(SHOP_A, "OrderFulfilled", orderId=5)
    indexer.ingest(fulfilled)
    assert indexer.ingest(fulfilled).outcome == DispatchOutcome.DUPLICATE
    # Handler-level replay, as a reorg recovery would do.
    apply_event(indexer.db, sources, fulfilled)

    order = EntityStore(indexer.db).load(Order, ids.order_id(SHOP_A, 5))
    assert order.status == "Fulfilled"


def test_variant_for_unknown_product_is_dropped_with_warning(indexer, chain, caplog):
    indexer.ingest(chain.shop_created(SHOP_A))
    with caplog.at_level(logging.WARNING):
        result = indexer.ingest(chain(SHOP_A, "VariantAdded", productId=99, variantId=1, name="XL", price=1, stock=1))

    assert result.outcome == DispatchOutcome.SKIPPED
    assert EntityStore(indexer.db).load(Variant, ids.variant_id(SHOP_A, 99, 1)) is None
    assert any(r.getMessage() == "orphan_reference_skipped" for r in caplog.records)
    audit = indexer.db.get_audit(action="skipped.orphan_reference")
    assert audit[0]["details"]["key"] == ids.product_id(SHOP_A, 99)


def test_revoked_feedback_leaves_the_summary(indexer, chain):
    indexer.ingest(
        chain(
            REPUTATION,
            "NewFeedback",
            agentId=7,
            clientAddress=CLIENT_D,
            feedbackIndex=0,
            value=80,
            valueDecimals=0,
            tag1="starred",
            tag2="",
        )
    )
    q = QueryService(indexer.db)
    assert q.reputation_summary(7, tag1="starred")["count"] == 1

    indexer.ingest(chain(REPUTATION, "FeedbackRevoked", agentId=7, clientAddress=CLIENT_D, feedbackIndex=0))
    summary = q.reputation_summary(7, tag1="starred")
    assert summary["count"] == 0
    assert summary["summary_value"] == 0


def test_delivery_completes_a_paid_order(indexer, chain):
    indexer.ingest(chain.shop_created(SHOP_A))
    indexer.ingest(chain(SHOP_A, "OrderCreated", orderId=5, customer=CUSTOMER, totalAmount=1200))
    indexer.ingest(chain(SHOP_A, "DigitalDelivery", orderId=5))

    order = QueryService(indexer.db).get_order(SHOP_A, 5)
    assert order["status"] == "Completed"
    assert order["escrow_amount"] == 0
    assert order["delivery"]["order"] == ids.order_id(SHOP_A, 5)

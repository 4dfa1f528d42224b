from __future__ import annotations

from indexer.core import ids

SHOP = "0x00000000000000000000000000000000000000AA"


def test_addresses_are_lowercased_in_every_key():
    assert ids.shop_id(SHOP) == SHOP.lower()
    assert ids.product_id(SHOP, 1) == f"{SHOP.lower()}-product-1"
    assert ids.employee_id(SHOP, "0xABC") == f"{SHOP.lower()}-employee-0xabc"
    assert ids.customer_id("0xABC") == "0xabc"
    assert ids.validation_id("0xDEAD") == "0xdead"


def test_scoped_key_formats():
    s = SHOP.lower()
    assert ids.category_id(SHOP, 3) == f"{s}-category-3"
    assert ids.collection_id(SHOP, 4) == f"{s}-collection-4"
    assert ids.variant_id(SHOP, 1, 2) == f"{s}-variant-1-2"
    assert ids.discount_id(SHOP, 9) == f"{s}-discount-9"
    assert ids.order_id(SHOP, 5) == f"{s}-order-5"
    assert ids.order_item_id(SHOP, 5, 0) == f"{s}-order-5-item-0"
    assert ids.delivery_id(SHOP, 5) == f"{s}-delivery-5"
    assert ids.review_id(SHOP, 5) == f"{s}-review-5"


def test_agent_and_feedback_keys():
    assert ids.PROTOCOL_ID == "protocol"
    assert ids.agent_id(7) == "7"
    assert ids.feedback_id(7, "0xD", 0) == "7-0xd-0"
    assert ids.feedback_response_id(7, "0xD", 0, block_number=12, log_index=3) == "7-0xd-0-resp-12-3"


def test_keys_are_deterministic():
    assert ids.order_id(SHOP, 5) == ids.order_id(SHOP.lower(), 5)
    assert ids.product_id(SHOP, 1) != ids.product_id(SHOP, 2)

"""indexer.core.ids

Deterministic composite identifiers.

Every key is built only from fields carried by the triggering event, so replaying an
event always lands on the same record. Addresses are lowercased before use.
"""

from __future__ import annotations

PROTOCOL_ID = "protocol"


def _addr(address: str) -> str:
    return address.strip().lower()


def shop_id(shop: str) -> str:
    return _addr(shop)


def scoped_id(shop: str, kind: str, local_id: int) -> str:
    """``{shop}-{kind}-{local_id}``."""

    return f"{_addr(shop)}-{kind}-{int(local_id)}"


def category_id(shop: str, category: int) -> str:
    return scoped_id(shop, "category", category)


def collection_id(shop: str, collection: int) -> str:
    return scoped_id(shop, "collection", collection)


def product_id(shop: str, product: int) -> str:
    return scoped_id(shop, "product", product)


def variant_id(shop: str, product: int, variant: int) -> str:
    return f"{_addr(shop)}-variant-{int(product)}-{int(variant)}"


def employee_id(shop: str, wallet: str) -> str:
    return f"{_addr(shop)}-employee-{_addr(wallet)}"


def discount_id(shop: str, discount: int) -> str:
    return scoped_id(shop, "discount", discount)


def order_id(shop: str, order: int) -> str:
    return scoped_id(shop, "order", order)


def order_item_id(shop: str, order: int, line: int) -> str:
    return f"{order_id(shop, order)}-item-{int(line)}"


def delivery_id(shop: str, order: int) -> str:
    return scoped_id(shop, "delivery", order)


def review_id(shop: str, order: int) -> str:
    return scoped_id(shop, "review", order)


def customer_id(wallet: str) -> str:
    return _addr(wallet)


def agent_id(agent: int) -> str:
    return str(int(agent))


def feedback_id(agent: int, client: str, index: int) -> str:
    return f"{int(agent)}-{_addr(client)}-{int(index)}"


def feedback_response_id(agent: int, client: str, index: int, *, block_number: int, log_index: int) -> str:
    return f"{feedback_id(agent, client, index)}-resp-{int(block_number)}-{int(log_index)}"


def validation_id(request_hash: str) -> str:
    return _addr(request_hash)

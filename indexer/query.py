"""indexer.query

Read-only views over committed snapshot rows.

Every method returns plain JSON-ready dicts. Nothing here touches an ``EntityStore``
overlay, so an event that is still being applied is never visible.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from indexer.core import ids
from indexer.core.database import Database
from indexer.core.models import EntityType

STAR_SCALE = 20


def _group_by(rows: list[dict[str, Any]], key: str) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for r in rows:
        grouped[str(r.get(key))].append(r)
    return grouped


def _newest_first(rows: list[dict[str, Any]], number_field: str) -> list[dict[str, Any]]:
    return sorted(rows, key=lambda r: (int(r.get("created_at") or 0), int(r.get(number_field) or 0)), reverse=True)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


@dataclass
class QueryService:
    db: Database

    # -----------------
    # Shops
    # -----------------

    def get_shop(self, address: str) -> dict[str, Any] | None:
        """Shop with its active catalogue, orders (newest first), reviews and staff."""

        sid = ids.shop_id(address)
        shop = self.db.get_entity(EntityType.SHOP, sid)
        if shop is None:
            return None

        variants = _group_by(
            [v for v in self.db.list_entities(EntityType.VARIANT, shop=sid) if v.get("active")], "product"
        )
        products = [
            {**p, "variants": variants.get(p["id"], [])}
            for p in self.db.list_entities(EntityType.PRODUCT, shop=sid)
            if p.get("active")
        ]

        return {
            **shop,
            "products": products,
            "categories": [c for c in self.db.list_entities(EntityType.CATEGORY, shop=sid) if c.get("active")],
            "collections": [c for c in self.db.list_entities(EntityType.COLLECTION, shop=sid) if c.get("active")],
            "orders": self._orders_with_items(self.db.list_entities(EntityType.ORDER, shop=sid), shop=sid),
            "reviews": _newest_first(self.db.list_entities(EntityType.REVIEW, shop=sid), "review_id"),
            "employees": [e for e in self.db.list_entities(EntityType.EMPLOYEE, shop=sid) if e.get("active")],
            "discounts": self.db.list_entities(EntityType.DISCOUNT, shop=sid),
        }

    def list_shops(self, *, limit: int = 100) -> list[dict[str, Any]]:
        return self.db.list_entities(EntityType.SHOP, limit=limit)

    def get_product(self, shop: str, product_id: int) -> dict[str, Any] | None:
        sid = ids.shop_id(shop)
        product = self.db.get_entity(EntityType.PRODUCT, ids.product_id(sid, product_id))
        if product is None:
            return None
        variants = [
            v
            for v in self.db.find_entities(EntityType.VARIANT, field="product", value=product["id"])
            if v.get("active")
        ]
        category = self.db.get_entity(EntityType.CATEGORY, product["category"]) if product.get("category") else None
        return {**product, "variants": variants, "category_detail": category}

    def search_products(self, text: str, *, limit: int = 50) -> list[dict[str, Any]]:
        """Case-insensitive name match across every shop. Active products only."""

        rows = self.db.search_entities(
            EntityType.PRODUCT, field="name", text=text.strip(), limit=limit, active_only=True
        )
        names = self._shop_names({r["shop"] for r in rows})
        return [{**r, "shop_name": names.get(r["shop"])} for r in rows]

    # -----------------
    # Orders & customers
    # -----------------

    def get_order(self, shop: str, order_id: int) -> dict[str, Any] | None:
        sid = ids.shop_id(shop)
        order = self.db.get_entity(EntityType.ORDER, ids.order_id(sid, order_id))
        if order is None:
            return None
        (full,) = self._orders_with_items([order], shop=sid)
        full["delivery"] = self.db.get_entity(EntityType.DIGITAL_DELIVERY, ids.delivery_id(sid, order_id))
        return full

    def get_customer(self, address: str) -> dict[str, Any] | None:
        """Order and review history for one wallet, across shops."""

        cid = ids.customer_id(address)
        customer = self.db.get_entity(EntityType.CUSTOMER, cid)
        if customer is None:
            return None

        orders = self._orders_with_items(self.db.find_entities(EntityType.ORDER, field="customer", value=cid))
        reviews = _newest_first(self.db.find_entities(EntityType.REVIEW, field="customer", value=cid), "review_id")
        names = self._shop_names({o["shop"] for o in orders} | {r["shop"] for r in reviews})
        return {
            **customer,
            "orders": [{**o, "shop_name": names.get(o["shop"])} for o in orders],
            "reviews": [{**r, "shop_name": names.get(r["shop"])} for r in reviews],
        }

    def _orders_with_items(self, orders: list[dict[str, Any]], *, shop: str | None = None) -> list[dict[str, Any]]:
        if not orders:
            return []
        if shop is not None:
            items = _group_by(self.db.list_entities(EntityType.ORDER_ITEM, shop=shop), "order")
        else:
            items = defaultdict(list)
            for o in orders:
                items[o["id"]] = self.db.find_entities(EntityType.ORDER_ITEM, field="order", value=o["id"])
        return [
            {**o, "items": sorted(items.get(o["id"], []), key=lambda i: int(i["line_index"]))}
            for o in _newest_first(orders, "order_id")
        ]

    def _shop_names(self, shop_ids: set[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        for sid in shop_ids:
            shop = self.db.get_entity(EntityType.SHOP, sid)
            if shop is not None:
                names[sid] = str(shop.get("name") or "")
        return names

    # -----------------
    # Agents
    # -----------------

    def get_agent(self, agent_id: int) -> dict[str, Any] | None:
        key = ids.agent_id(agent_id)
        agent = self.db.get_entity(EntityType.AGENT, key)
        if agent is None:
            return None
        shops = self.db.find_entities(EntityType.SHOP, field="agent", value=key)
        validations = self.db.find_entities(EntityType.VALIDATION_REQUEST, field="agent", value=key)
        return {**agent, "shops": [s["id"] for s in shops], "validations": validations}

    def reputation_summary(
        self,
        agent_id: int,
        *,
        tag1: str | None = None,
        tag2: str | None = None,
    ) -> dict[str, Any]:
        """Aggregate of non-revoked feedback for one agent, optionally tag-filtered.

        Values with different ``value_decimals`` are rescaled to the largest scale before
        summing, so ``summary_value / 10**summary_value_decimals`` is the exact total.
        ``stars`` assumes the 0-100 convention: average / 20, rounded half up.
        """

        rows = [
            f
            for f in self.db.find_entities(EntityType.FEEDBACK, field="agent", value=ids.agent_id(agent_id))
            if not f.get("is_revoked")
            and (tag1 is None or f.get("tag1") == tag1)
            and (tag2 is None or f.get("tag2") == tag2)
        ]

        scale = max((int(f.get("value_decimals") or 0) for f in rows), default=0)
        total = sum(int(f["value"]) * 10 ** (scale - int(f.get("value_decimals") or 0)) for f in rows)
        count = len(rows)
        average = (total / 10**scale) / count if count else None

        return {
            "agent_id": int(agent_id),
            "tag1": tag1,
            "tag2": tag2,
            "count": count,
            "summary_value": total,
            "summary_value_decimals": scale,
            "average": average,
            "stars": _round_half_up(average / STAR_SCALE) if average is not None else None,
        }

    def get_feedback(self, agent_id: int, *, include_revoked: bool = False) -> list[dict[str, Any]]:
        rows = self.db.find_entities(EntityType.FEEDBACK, field="agent", value=ids.agent_id(agent_id))
        if not include_revoked:
            rows = [f for f in rows if not f.get("is_revoked")]
        responses = _group_by(
            [
                r
                for f in rows
                for r in self.db.find_entities(EntityType.FEEDBACK_RESPONSE, field="feedback", value=f["id"])
            ],
            "feedback",
        )
        return [{**f, "responses": responses.get(f["id"], [])} for f in rows]

    def get_validation(self, request_hash: str) -> dict[str, Any] | None:
        return self.db.get_entity(EntityType.VALIDATION_REQUEST, ids.validation_id(request_hash))

    # -----------------
    # Status
    # -----------------

    def status(self, *, partition: str = "main", recent: int = 10) -> dict[str, Any]:
        cursor = self.db.get_cursor(partition)
        return {
            "partition": partition,
            "cursor": list(cursor) if cursor is not None else None,
            "journal_size": self.db.count_journal(),
            "watched_shops": len(self.db.load_watches()),
            "shops": self.db.count_entities(EntityType.SHOP),
            "orders": self.db.count_entities(EntityType.ORDER),
            "protocol": self.db.get_entity(EntityType.PROTOCOL, ids.PROTOCOL_ID),
            "recent": [
                {"position": key, "event": name, "outcome": outcome}
                for key, name, outcome in self.db.journal_outcomes(limit=recent)
            ],
        }

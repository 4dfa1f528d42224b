"""indexer.core.models

Derived entity records.

Records are immutable: a change is a new record with the same key, produced with
``model_copy(update=...)`` and written back whole. Nothing is ever deleted;
deactivation is a flag.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

from indexer.core.order_sm import INITIAL_STATUS, OrderStatus


class EntityType(StrEnum):
    PROTOCOL = "protocol"
    SHOP = "shop"
    CATEGORY = "category"
    COLLECTION = "collection"
    PRODUCT = "product"
    VARIANT = "variant"
    EMPLOYEE = "employee"
    DISCOUNT = "discount"
    CUSTOMER = "customer"
    ORDER = "order"
    ORDER_ITEM = "order_item"
    DIGITAL_DELIVERY = "digital_delivery"
    REVIEW = "review"
    AGENT = "agent"
    FEEDBACK = "feedback"
    FEEDBACK_RESPONSE = "feedback_response"
    VALIDATION_REQUEST = "validation_request"


class Record(BaseModel):
    id: str

    model_config = {"frozen": True}

    @property
    def shop_key(self) -> str | None:
        """Owning shop, for shop-scoped records."""

        return getattr(self, "shop", None)


class Protocol(Record):
    hub: str
    protocol_fee: int = 0
    shop_count: int = 0


class Shop(Record):
    address: str
    owner: str
    name: str
    metadata_uri: str = ""
    payment_split_address: str | None = None
    agent_id: int | None = None
    # Agent key, so lookups never bind a uint256 as an SQLite integer.
    agent: str | None = None
    created_at: int = 0

    @property
    def shop_key(self) -> str | None:
        return self.id


class Category(Record):
    category_id: int
    shop: str
    name: str
    metadata_uri: str = ""
    active: bool = True


class Collection(Record):
    collection_id: int
    shop: str
    name: str
    product_ids: tuple[int, ...] = ()
    metadata_uri: str = ""
    active: bool = True


class Product(Record):
    product_id: int
    shop: str
    name: str
    price: int
    stock: int
    category: str | None = None
    metadata_uri: str = ""
    active: bool = True
    created_at: int = 0


class Variant(Record):
    variant_id: int
    product: str
    shop: str
    name: str
    price: int
    stock: int
    active: bool = True


class Employee(Record):
    address: str
    shop: str
    role: int
    active: bool = True


class Discount(Record):
    discount_id: int
    shop: str
    code: str
    basis_points: int
    max_uses: int
    used_count: int = 0
    expires_at: int
    active: bool = True
    # Chain position of the last counted use; uses at or before it are replays.
    last_use: tuple[int, int, int] | None = None


class Customer(Record):
    address: str


class Order(Record):
    order_id: int
    shop: str
    customer: str
    total_amount: int
    protocol_fee_amount: int = 0
    escrow_amount: int = 0
    status: OrderStatus = INITIAL_STATUS
    created_at: int = 0
    updated_at: int = 0


class OrderItem(Record):
    order: str
    shop: str
    line_index: int
    product: str
    variant: str | None = None
    quantity: int


class DigitalDelivery(Record):
    order: str
    shop: str
    created_at: int = 0


class Review(Record):
    """Shop-side review, tied to one order."""

    review_id: int
    shop: str
    order: str
    customer: str
    rating: int
    metadata_uri: str = ""
    created_at: int = 0


class Agent(Record):
    agent_id: int
    owner: str
    agent_uri: str = ""
    created_at: int = 0


class Feedback(Record):
    """Reputation-registry feedback. Revocation is a flag, not a delete."""

    agent: str
    client_address: str
    feedback_index: int
    value: int
    value_decimals: int = 0
    tag1: str = ""
    tag2: str = ""
    is_revoked: bool = False
    created_at: int = 0


class FeedbackResponse(Record):
    feedback: str
    responder: str | None = None
    response_uri: str = ""
    created_at: int = 0


class ValidationRequest(Record):
    request_hash: str
    agent: str
    validator_address: str
    request_uri: str = ""
    response: int | None = None
    response_tag: str | None = None
    created_at: int = 0
    responded_at: int | None = None


ENTITY_MODELS: dict[EntityType, type[Record]] = {
    EntityType.PROTOCOL: Protocol,
    EntityType.SHOP: Shop,
    EntityType.CATEGORY: Category,
    EntityType.COLLECTION: Collection,
    EntityType.PRODUCT: Product,
    EntityType.VARIANT: Variant,
    EntityType.EMPLOYEE: Employee,
    EntityType.DISCOUNT: Discount,
    EntityType.CUSTOMER: Customer,
    EntityType.ORDER: Order,
    EntityType.ORDER_ITEM: OrderItem,
    EntityType.DIGITAL_DELIVERY: DigitalDelivery,
    EntityType.REVIEW: Review,
    EntityType.AGENT: Agent,
    EntityType.FEEDBACK: Feedback,
    EntityType.FEEDBACK_RESPONSE: FeedbackResponse,
    EntityType.VALIDATION_REQUEST: ValidationRequest,
}


def model_for(entity_type: EntityType) -> type[Record]:
    return ENTITY_MODELS[entity_type]

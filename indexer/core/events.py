"""indexer.core.events

The event contract is the primitive.

Every log the indexer consumes is wrapped in a :class:`ChainEvent` envelope. The
arguments of each (role, event name) pair are validated against a typed payload model
before any handler sees them. Wire names are the contract's camelCase parameter
names; Python attributes are snake_case.
"""

from __future__ import annotations

import hashlib
import json
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def normalize_address(value: str) -> str:
    v = str(value).strip().lower()
    if not v.startswith("0x"):
        raise ValueError(f"expected 0x-prefixed hex, got {value!r}")
    return v


Address = Annotated[str, AfterValidator(normalize_address)]
Bytes32 = Annotated[str, AfterValidator(normalize_address)]
Uint = Annotated[int, Field(ge=0)]


class ContractRole(StrEnum):
    HUB = "hub"
    SHOP = "shop"
    IDENTITY = "identity"
    REPUTATION = "reputation"
    VALIDATION = "validation"


class EventName(StrEnum):
    """Canonical event names, as emitted by the contracts."""

    # Hub
    SHOP_CREATED = "ShopCreated"
    PROTOCOL_FEE_UPDATED = "ProtocolFeeUpdated"

    # Shop
    PRODUCT_CREATED = "ProductCreated"
    PRODUCT_UPDATED = "ProductUpdated"
    PRODUCT_DEACTIVATED = "ProductDeactivated"
    CATEGORY_CREATED = "CategoryCreated"
    CATEGORY_UPDATED = "CategoryUpdated"
    COLLECTION_CREATED = "CollectionCreated"
    VARIANT_ADDED = "VariantAdded"
    EMPLOYEE_ADDED = "EmployeeAdded"
    EMPLOYEE_REMOVED = "EmployeeRemoved"
    ORDER_CREATED = "OrderCreated"
    ORDER_FULFILLED = "OrderFulfilled"
    ORDER_CANCELLED = "OrderCancelled"
    ORDER_REFUNDED = "OrderRefunded"
    DIGITAL_DELIVERY = "DigitalDelivery"
    DISCOUNT_CREATED = "DiscountCreated"
    DISCOUNT_USED = "DiscountUsed"
    PAYMENT_SPLIT_UPDATED = "PaymentSplitUpdated"
    FEEDBACK_LEFT = "FeedbackLeft"

    # Identity registry
    REGISTERED = "Registered"
    URI_UPDATED = "URIUpdated"

    # Reputation registry
    NEW_FEEDBACK = "NewFeedback"
    FEEDBACK_REVOKED = "FeedbackRevoked"
    RESPONSE_APPENDED = "ResponseAppended"

    # Validation registry
    VALIDATION_REQUESTED = "ValidationRequested"
    VALIDATION_RESPONDED = "ValidationResponded"


# -----------------
# Envelope
# -----------------


class ChainEvent(BaseModel):
    """A decoded log, in the order the chain emitted it.

    The event source is responsible for delivering envelopes in ascending
    ``(block_number, transaction_index, log_index)`` order.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    address: Address
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    block_number: Uint
    block_timestamp: Uint = 0
    transaction_hash: str = ""
    transaction_index: Uint = 0
    log_index: Uint = 0

    @property
    def position(self) -> tuple[int, int, int]:
        return (self.block_number, self.transaction_index, self.log_index)

    def dedupe_key(self) -> str:
        """Chain position key: ``{block}:{tx_index}:{log_index}``."""

        return f"{self.block_number}:{self.transaction_index}:{self.log_index}"

    def payload_hash(self) -> str:
        return payload_hash({"address": self.address, "name": self.name, "args": self.args})


# -----------------
# Typed payloads
# -----------------


class EventPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ShopCreatedPayload(EventPayload):
    shop: Address
    owner: Address
    name: str
    metadata_uri: str = Field("", alias="metadataURI")
    agent_id: Uint | None = None


class ProtocolFeeUpdatedPayload(EventPayload):
    new_fee: Uint


class ProductCreatedPayload(EventPayload):
    product_id: Uint
    name: str
    price: Uint
    stock: Uint
    category_id: Uint = 0


class ProductUpdatedPayload(EventPayload):
    product_id: Uint
    price: Uint
    stock: Uint
    metadata_uri: str = Field("", alias="metadataURI")


class ProductDeactivatedPayload(EventPayload):
    product_id: Uint


class CategoryCreatedPayload(EventPayload):
    category_id: Uint
    name: str


class CategoryUpdatedPayload(EventPayload):
    category_id: Uint
    name: str
    metadata_uri: str = Field("", alias="metadataURI")


class CollectionCreatedPayload(EventPayload):
    collection_id: Uint
    name: str
    product_ids: list[Uint] = Field(default_factory=list)


class VariantAddedPayload(EventPayload):
    product_id: Uint
    variant_id: Uint
    name: str
    price: Uint
    stock: Uint


class EmployeeAddedPayload(EventPayload):
    employee: Address
    role: Uint


class EmployeeRemovedPayload(EventPayload):
    employee: Address


class OrderItemArg(EventPayload):
    product_id: Uint
    variant_id: Uint | None = None
    quantity: Uint = 1


class OrderCreatedPayload(EventPayload):
    order_id: Uint
    customer: Address
    total_amount: Uint
    protocol_fee_amount: Uint | None = None
    escrow_amount: Uint | None = None
    items: list[OrderItemArg] = Field(default_factory=list)


class OrderRefPayload(EventPayload):
    """Shared shape of the order lifecycle events."""

    order_id: Uint


class DiscountCreatedPayload(EventPayload):
    discount_id: Uint
    code: Bytes32
    basis_points: Uint
    max_uses: Uint
    expires_at: Uint


class DiscountUsedPayload(EventPayload):
    discount_id: Uint


class PaymentSplitUpdatedPayload(EventPayload):
    split_address: Address


class FeedbackLeftPayload(EventPayload):
    order_id: Uint
    customer: Address
    rating: int
    metadata_uri: str = Field("", alias="metadataURI")


class RegisteredPayload(EventPayload):
    agent_id: Uint
    owner: Address
    agent_uri: str = Field("", alias="agentURI")


class URIUpdatedPayload(EventPayload):
    agent_id: Uint
    new_uri: str = Field(alias="newURI")


class NewFeedbackPayload(EventPayload):
    agent_id: Uint
    client_address: Address
    feedback_index: Uint
    value: int
    value_decimals: Uint = 0
    tag1: str = ""
    tag2: str = ""


class FeedbackRevokedPayload(EventPayload):
    agent_id: Uint
    client_address: Address
    feedback_index: Uint


class ResponseAppendedPayload(EventPayload):
    agent_id: Uint
    client_address: Address
    feedback_index: Uint
    responder: Address | None = None
    response_uri: str = Field("", alias="responseURI")


class ValidationRequestedPayload(EventPayload):
    request_hash: Bytes32
    agent_id: Uint
    validator_address: Address
    request_uri: str = Field("", alias="requestURI")


class ValidationRespondedPayload(EventPayload):
    request_hash: Bytes32
    response: Uint
    tag: str = ""


_EVENT_PAYLOAD_MODELS: dict[tuple[ContractRole, EventName], type[EventPayload]] = {
    # Hub
    (ContractRole.HUB, EventName.SHOP_CREATED): ShopCreatedPayload,
    (ContractRole.HUB, EventName.PROTOCOL_FEE_UPDATED): ProtocolFeeUpdatedPayload,
    # Shop
    (ContractRole.SHOP, EventName.PRODUCT_CREATED): ProductCreatedPayload,
    (ContractRole.SHOP, EventName.PRODUCT_UPDATED): ProductUpdatedPayload,
    (ContractRole.SHOP, EventName.PRODUCT_DEACTIVATED): ProductDeactivatedPayload,
    (ContractRole.SHOP, EventName.CATEGORY_CREATED): CategoryCreatedPayload,
    (ContractRole.SHOP, EventName.CATEGORY_UPDATED): CategoryUpdatedPayload,
    (ContractRole.SHOP, EventName.COLLECTION_CREATED): CollectionCreatedPayload,
    (ContractRole.SHOP, EventName.VARIANT_ADDED): VariantAddedPayload,
    (ContractRole.SHOP, EventName.EMPLOYEE_ADDED): EmployeeAddedPayload,
    (ContractRole.SHOP, EventName.EMPLOYEE_REMOVED): EmployeeRemovedPayload,
    (ContractRole.SHOP, EventName.ORDER_CREATED): OrderCreatedPayload,
    (ContractRole.SHOP, EventName.ORDER_FULFILLED): OrderRefPayload,
    (ContractRole.SHOP, EventName.ORDER_CANCELLED): OrderRefPayload,
    (ContractRole.SHOP, EventName.ORDER_REFUNDED): OrderRefPayload,
    (ContractRole.SHOP, EventName.DIGITAL_DELIVERY): OrderRefPayload,
    (ContractRole.SHOP, EventName.DISCOUNT_CREATED): DiscountCreatedPayload,
    (ContractRole.SHOP, EventName.DISCOUNT_USED): DiscountUsedPayload,
    (ContractRole.SHOP, EventName.PAYMENT_SPLIT_UPDATED): PaymentSplitUpdatedPayload,
    (ContractRole.SHOP, EventName.FEEDBACK_LEFT): FeedbackLeftPayload,
    # Identity
    (ContractRole.IDENTITY, EventName.REGISTERED): RegisteredPayload,
    (ContractRole.IDENTITY, EventName.URI_UPDATED): URIUpdatedPayload,
    # Reputation
    (ContractRole.REPUTATION, EventName.NEW_FEEDBACK): NewFeedbackPayload,
    (ContractRole.REPUTATION, EventName.FEEDBACK_REVOKED): FeedbackRevokedPayload,
    (ContractRole.REPUTATION, EventName.RESPONSE_APPENDED): ResponseAppendedPayload,
    # Validation
    (ContractRole.VALIDATION, EventName.VALIDATION_REQUESTED): ValidationRequestedPayload,
    (ContractRole.VALIDATION, EventName.VALIDATION_RESPONDED): ValidationRespondedPayload,
}


SHOP_EVENT_NAMES: frozenset[str] = frozenset(
    str(name) for role, name in _EVENT_PAYLOAD_MODELS if role == ContractRole.SHOP
)


def payload_model_for(role: ContractRole, name: str) -> type[EventPayload] | None:
    try:
        key = (role, EventName(name))
    except ValueError:
        return None
    return _EVENT_PAYLOAD_MODELS.get(key)


def canonical_json(data: Any) -> str:
    """Canonical JSON serialization used for hashing, dedupe and storage."""

    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def payload_hash(payload: BaseModel | dict[str, Any]) -> str:
    """SHA-256 hash of canonical payload JSON."""

    obj = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()

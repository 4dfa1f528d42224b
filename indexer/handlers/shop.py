"""indexer.handlers.shop

Shop-scoped events: catalogue, staff, orders, discounts, reviews.

Every handler here resolves the owning Shop first. A shop-scoped record is never
written without its parent; a missing parent raises OrphanReferenceError and the
dispatcher records the skip.
"""

from __future__ import annotations

from indexer.core import ids
from indexer.core.events import (
    CategoryCreatedPayload,
    CategoryUpdatedPayload,
    CollectionCreatedPayload,
    ContractRole,
    DiscountCreatedPayload,
    DiscountUsedPayload,
    EmployeeAddedPayload,
    EmployeeRemovedPayload,
    EventName,
    FeedbackLeftPayload,
    OrderCreatedPayload,
    OrderRefPayload,
    PaymentSplitUpdatedPayload,
    ProductCreatedPayload,
    ProductDeactivatedPayload,
    ProductUpdatedPayload,
    VariantAddedPayload,
)
from indexer.core.exceptions import OrphanReferenceError
from indexer.core.models import (
    Category,
    Collection,
    Customer,
    DigitalDelivery,
    Discount,
    Employee,
    Order,
    OrderItem,
    Product,
    Protocol,
    Review,
    Variant,
)
from indexer.core.order_sm import INITIAL_STATUS, OrderStatus, OrderTrigger
from indexer.handlers.base import HandlerContext
from indexer.handlers.registry import handles

BASIS_POINTS = 10_000


# -----------------
# Catalogue
# -----------------


@handles(ContractRole.SHOP, EventName.PRODUCT_CREATED)
def handle_product_created(ctx: HandlerContext, p: ProductCreatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.product_id(shop.id, p.product_id)
    existing = ctx.store.load(Product, key)

    product = Product(
        id=key,
        product_id=p.product_id,
        shop=shop.id,
        name=p.name,
        price=p.price,
        stock=p.stock,
        category=ids.category_id(shop.id, p.category_id),
        created_at=ctx.timestamp,
    )
    if existing is not None:
        product = product.model_copy(
            update={
                "metadata_uri": existing.metadata_uri,
                "active": existing.active,
                "created_at": existing.created_at,
            }
        )
    ctx.store.save(product)


@handles(ContractRole.SHOP, EventName.PRODUCT_UPDATED)
def handle_product_updated(ctx: HandlerContext, p: ProductUpdatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.product_id(shop.id, p.product_id)
    product = ctx.store.load(Product, key)
    if product is None:
        raise OrphanReferenceError("product", key)
    ctx.store.save(
        product.model_copy(update={"price": p.price, "stock": p.stock, "metadata_uri": p.metadata_uri})
    )


@handles(ContractRole.SHOP, EventName.PRODUCT_DEACTIVATED)
def handle_product_deactivated(ctx: HandlerContext, p: ProductDeactivatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.product_id(shop.id, p.product_id)
    product = ctx.store.load(Product, key)
    if product is None:
        raise OrphanReferenceError("product", key)
    ctx.store.save(product.model_copy(update={"active": False}))


@handles(ContractRole.SHOP, EventName.CATEGORY_CREATED)
def handle_category_created(ctx: HandlerContext, p: CategoryCreatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.category_id(shop.id, p.category_id)
    existing = ctx.store.load(Category, key)

    category = Category(id=key, category_id=p.category_id, shop=shop.id, name=p.name)
    if existing is not None:
        category = category.model_copy(
            update={"metadata_uri": existing.metadata_uri, "active": existing.active}
        )
    ctx.store.save(category)


@handles(ContractRole.SHOP, EventName.CATEGORY_UPDATED)
def handle_category_updated(ctx: HandlerContext, p: CategoryUpdatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.category_id(shop.id, p.category_id)
    category = ctx.store.load(Category, key)
    if category is None:
        raise OrphanReferenceError("category", key)
    ctx.store.save(category.model_copy(update={"name": p.name, "metadata_uri": p.metadata_uri}))


@handles(ContractRole.SHOP, EventName.COLLECTION_CREATED)
def handle_collection_created(ctx: HandlerContext, p: CollectionCreatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.collection_id(shop.id, p.collection_id)
    existing = ctx.store.load(Collection, key)

    collection = Collection(
        id=key,
        collection_id=p.collection_id,
        shop=shop.id,
        name=p.name,
        product_ids=tuple(p.product_ids),
    )
    if existing is not None:
        collection = collection.model_copy(
            update={"metadata_uri": existing.metadata_uri, "active": existing.active}
        )
    ctx.store.save(collection)


@handles(ContractRole.SHOP, EventName.VARIANT_ADDED)
def handle_variant_added(ctx: HandlerContext, p: VariantAddedPayload) -> None:
    shop = ctx.require_shop()
    product_key = ids.product_id(shop.id, p.product_id)
    if not ctx.store.exists(Product, product_key):
        raise OrphanReferenceError("product", product_key)

    key = ids.variant_id(shop.id, p.product_id, p.variant_id)
    existing = ctx.store.load(Variant, key)
    variant = Variant(
        id=key,
        variant_id=p.variant_id,
        product=product_key,
        shop=shop.id,
        name=p.name,
        price=p.price,
        stock=p.stock,
    )
    if existing is not None:
        variant = variant.model_copy(update={"active": existing.active})
    ctx.store.save(variant)


# -----------------
# Staff
# -----------------


@handles(ContractRole.SHOP, EventName.EMPLOYEE_ADDED)
def handle_employee_added(ctx: HandlerContext, p: EmployeeAddedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.employee_id(shop.id, p.employee)
    ctx.store.save(Employee(id=key, address=p.employee, shop=shop.id, role=p.role, active=True))


@handles(ContractRole.SHOP, EventName.EMPLOYEE_REMOVED)
def handle_employee_removed(ctx: HandlerContext, p: EmployeeRemovedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.employee_id(shop.id, p.employee)
    employee = ctx.store.load(Employee, key)
    if employee is None:
        raise OrphanReferenceError("employee", key)
    ctx.store.save(employee.model_copy(update={"active": False}))


@handles(ContractRole.SHOP, EventName.PAYMENT_SPLIT_UPDATED)
def handle_payment_split_updated(ctx: HandlerContext, p: PaymentSplitUpdatedPayload) -> None:
    shop = ctx.require_shop()
    ctx.store.save(shop.model_copy(update={"payment_split_address": p.split_address}))


# -----------------
# Orders
# -----------------


def _get_or_create_customer(ctx: HandlerContext, address: str) -> Customer:
    key = ids.customer_id(address)
    customer = ctx.store.load(Customer, key)
    if customer is None:
        customer = Customer(id=key, address=address)
        ctx.store.save(customer)
    return customer


@handles(ContractRole.SHOP, EventName.ORDER_CREATED)
def handle_order_created(ctx: HandlerContext, p: OrderCreatedPayload) -> None:
    shop = ctx.require_shop()
    customer = _get_or_create_customer(ctx, p.customer)
    key = ids.order_id(shop.id, p.order_id)

    fee = p.protocol_fee_amount
    if fee is None:
        protocol = ctx.store.load(Protocol, ids.PROTOCOL_ID)
        rate = protocol.protocol_fee if protocol is not None else 0
        fee = p.total_amount * rate // BASIS_POINTS
    escrow = p.escrow_amount if p.escrow_amount is not None else p.total_amount - fee

    order = Order(
        id=key,
        order_id=p.order_id,
        shop=shop.id,
        customer=customer.id,
        total_amount=p.total_amount,
        protocol_fee_amount=fee,
        escrow_amount=escrow,
        status=INITIAL_STATUS,
        created_at=ctx.timestamp,
        updated_at=ctx.timestamp,
    )

    existing = ctx.store.load(Order, key)
    if existing is not None:
        # A replayed creation never rewinds the lifecycle.
        order = order.model_copy(
            update={
                "status": existing.status,
                "escrow_amount": existing.escrow_amount,
                "updated_at": existing.updated_at,
            }
        )
    ctx.store.save(order)

    for line, item in enumerate(p.items):
        variant = None
        if item.variant_id is not None:
            variant = ids.variant_id(shop.id, item.product_id, item.variant_id)
        ctx.store.save(
            OrderItem(
                id=ids.order_item_id(shop.id, p.order_id, line),
                order=key,
                shop=shop.id,
                line_index=line,
                product=ids.product_id(shop.id, item.product_id),
                variant=variant,
                quantity=item.quantity,
            )
        )


def _advance_order(ctx: HandlerContext, order_number: int, trigger: OrderTrigger) -> Order:
    shop = ctx.require_shop()
    key = ids.order_id(shop.id, order_number)
    order = ctx.store.load(Order, key)
    if order is None:
        raise OrphanReferenceError("order", key)

    transition = ctx.orders.next_status(state=order.status, trigger=trigger)
    if transition is None:
        ctx.logger.debug(
            "order_transition_noop",
            extra={"order": key, "status": str(order.status), "trigger": str(trigger)},
        )
        return order

    update: dict[str, object] = {"status": transition.new, "updated_at": ctx.timestamp}
    if transition.previous == OrderStatus.PAID:
        # Escrow is released (to the shop or back to the customer) once the order leaves Paid.
        update["escrow_amount"] = 0
    order = order.model_copy(update=update)
    ctx.store.save(order)
    return order


@handles(ContractRole.SHOP, EventName.ORDER_FULFILLED)
def handle_order_fulfilled(ctx: HandlerContext, p: OrderRefPayload) -> None:
    _advance_order(ctx, p.order_id, OrderTrigger.FULFILLED)


@handles(ContractRole.SHOP, EventName.ORDER_CANCELLED)
def handle_order_cancelled(ctx: HandlerContext, p: OrderRefPayload) -> None:
    _advance_order(ctx, p.order_id, OrderTrigger.CANCELLED)


@handles(ContractRole.SHOP, EventName.ORDER_REFUNDED)
def handle_order_refunded(ctx: HandlerContext, p: OrderRefPayload) -> None:
    _advance_order(ctx, p.order_id, OrderTrigger.REFUNDED)


@handles(ContractRole.SHOP, EventName.DIGITAL_DELIVERY)
def handle_digital_delivery(ctx: HandlerContext, p: OrderRefPayload) -> None:
    order = _advance_order(ctx, p.order_id, OrderTrigger.DELIVERED)

    key = ids.delivery_id(order.shop, p.order_id)
    if not ctx.store.exists(DigitalDelivery, key):
        ctx.store.save(DigitalDelivery(id=key, order=order.id, shop=order.shop, created_at=ctx.timestamp))


# -----------------
# Discounts
# -----------------


@handles(ContractRole.SHOP, EventName.DISCOUNT_CREATED)
def handle_discount_created(ctx: HandlerContext, p: DiscountCreatedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.discount_id(shop.id, p.discount_id)
    existing = ctx.store.load(Discount, key)

    discount = Discount(
        id=key,
        discount_id=p.discount_id,
        shop=shop.id,
        code=p.code,
        basis_points=p.basis_points,
        max_uses=p.max_uses,
        expires_at=p.expires_at,
    )
    if existing is not None:
        discount = discount.model_copy(
            update={
                "used_count": existing.used_count,
                "last_use": existing.last_use,
                "active": existing.active,
            }
        )
    ctx.store.save(discount)


@handles(ContractRole.SHOP, EventName.DISCOUNT_USED)
def handle_discount_used(ctx: HandlerContext, p: DiscountUsedPayload) -> None:
    shop = ctx.require_shop()
    key = ids.discount_id(shop.id, p.discount_id)
    discount = ctx.store.load(Discount, key)
    if discount is None:
        raise OrphanReferenceError("discount", key)

    position = ctx.event.position
    if discount.last_use is not None and position <= discount.last_use:
        return
    ctx.store.save(discount.model_copy(update={"used_count": discount.used_count + 1, "last_use": position}))


# -----------------
# Reviews
# -----------------


@handles(ContractRole.SHOP, EventName.FEEDBACK_LEFT)
def handle_feedback_left(ctx: HandlerContext, p: FeedbackLeftPayload) -> None:
    shop = ctx.require_shop()
    order_key = ids.order_id(shop.id, p.order_id)
    if not ctx.store.exists(Order, order_key):
        raise OrphanReferenceError("order", order_key)

    customer = _get_or_create_customer(ctx, p.customer)
    key = ids.review_id(shop.id, p.order_id)
    existing = ctx.store.load(Review, key)
    ctx.store.save(
        Review(
            id=key,
            review_id=p.order_id,
            shop=shop.id,
            order=order_key,
            customer=customer.id,
            rating=p.rating,
            metadata_uri=p.metadata_uri,
            created_at=existing.created_at if existing is not None else ctx.timestamp,
        )
    )

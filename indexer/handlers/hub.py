"""indexer.handlers.hub

The hub spawns shops and sets the protocol fee.

``ShopCreated`` is the only place new sources enter the system: it writes the Shop and
stages a watch on its address in the same unit of work.
"""

from __future__ import annotations

from indexer.core import ids
from indexer.core.events import (
    ContractRole,
    EventName,
    ProtocolFeeUpdatedPayload,
    ShopCreatedPayload,
)
from indexer.core.models import Protocol, Shop
from indexer.handlers.base import HandlerContext
from indexer.handlers.registry import handles


def _get_or_create_protocol(ctx: HandlerContext) -> Protocol:
    protocol = ctx.store.load(Protocol, ids.PROTOCOL_ID)
    if protocol is None:
        protocol = Protocol(id=ids.PROTOCOL_ID, hub=ctx.event.address)
    return protocol


@handles(ContractRole.HUB, EventName.SHOP_CREATED)
def handle_shop_created(ctx: HandlerContext, p: ShopCreatedPayload) -> None:
    sid = ids.shop_id(p.shop)
    existing = ctx.store.load(Shop, sid)

    protocol = _get_or_create_protocol(ctx)
    if existing is None:
        protocol = protocol.model_copy(update={"shop_count": protocol.shop_count + 1})
    ctx.store.save(protocol)

    shop = Shop(
        id=sid,
        address=p.shop,
        owner=p.owner,
        name=p.name,
        metadata_uri=p.metadata_uri,
        agent_id=p.agent_id,
        agent=ids.agent_id(p.agent_id) if p.agent_id is not None else None,
        created_at=ctx.timestamp,
    )
    if existing is not None:
        # Fields owned by later shop events survive a replay of the creation.
        shop = shop.model_copy(update={"payment_split_address": existing.payment_split_address})
    ctx.store.save(shop)

    if ctx.sources.register_watch(p.shop, start_block=ctx.event.block_number):
        ctx.logger.info("shop_watch_registered", extra={"shop": sid, "block": ctx.event.block_number})


@handles(ContractRole.HUB, EventName.PROTOCOL_FEE_UPDATED)
def handle_protocol_fee_updated(ctx: HandlerContext, p: ProtocolFeeUpdatedPayload) -> None:
    protocol = _get_or_create_protocol(ctx)
    ctx.store.save(protocol.model_copy(update={"protocol_fee": p.new_fee}))

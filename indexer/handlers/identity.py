"""indexer.handlers.identity

Agent identities, referenced by ``Shop.agent_id``.
"""

from __future__ import annotations

from indexer.core import ids
from indexer.core.events import ContractRole, EventName, RegisteredPayload, URIUpdatedPayload
from indexer.core.exceptions import OrphanReferenceError
from indexer.core.models import Agent
from indexer.handlers.base import HandlerContext
from indexer.handlers.registry import handles


@handles(ContractRole.IDENTITY, EventName.REGISTERED)
def handle_registered(ctx: HandlerContext, p: RegisteredPayload) -> None:
    key = ids.agent_id(p.agent_id)
    existing = ctx.store.load(Agent, key)
    ctx.store.save(
        Agent(
            id=key,
            agent_id=p.agent_id,
            owner=p.owner,
            agent_uri=p.agent_uri,
            created_at=existing.created_at if existing is not None else ctx.timestamp,
        )
    )


@handles(ContractRole.IDENTITY, EventName.URI_UPDATED)
def handle_uri_updated(ctx: HandlerContext, p: URIUpdatedPayload) -> None:
    key = ids.agent_id(p.agent_id)
    agent = ctx.store.load(Agent, key)
    if agent is None:
        raise OrphanReferenceError("agent", key)
    ctx.store.save(agent.model_copy(update={"agent_uri": p.new_uri}))

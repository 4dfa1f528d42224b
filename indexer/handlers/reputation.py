"""indexer.handlers.reputation

Reputation-registry feedback, independent of shops and orders.

Feedback is keyed by (agent, client, feedback index). Revocation flips a flag so the
audit trail survives; aggregate scores skip revoked entries.
"""

from __future__ import annotations

from indexer.core import ids
from indexer.core.events import (
    ContractRole,
    EventName,
    FeedbackRevokedPayload,
    NewFeedbackPayload,
    ResponseAppendedPayload,
)
from indexer.core.exceptions import OrphanReferenceError
from indexer.core.models import Feedback, FeedbackResponse
from indexer.handlers.base import HandlerContext
from indexer.handlers.registry import handles


@handles(ContractRole.REPUTATION, EventName.NEW_FEEDBACK)
def handle_new_feedback(ctx: HandlerContext, p: NewFeedbackPayload) -> None:
    key = ids.feedback_id(p.agent_id, p.client_address, p.feedback_index)
    existing = ctx.store.load(Feedback, key)
    ctx.store.save(
        Feedback(
            id=key,
            agent=ids.agent_id(p.agent_id),
            client_address=p.client_address,
            feedback_index=p.feedback_index,
            value=p.value,
            value_decimals=p.value_decimals,
            tag1=p.tag1,
            tag2=p.tag2,
            is_revoked=existing.is_revoked if existing is not None else False,
            created_at=existing.created_at if existing is not None else ctx.timestamp,
        )
    )


@handles(ContractRole.REPUTATION, EventName.FEEDBACK_REVOKED)
def handle_feedback_revoked(ctx: HandlerContext, p: FeedbackRevokedPayload) -> None:
    key = ids.feedback_id(p.agent_id, p.client_address, p.feedback_index)
    feedback = ctx.store.load(Feedback, key)
    if feedback is None:
        raise OrphanReferenceError("feedback", key)
    ctx.store.save(feedback.model_copy(update={"is_revoked": True}))


@handles(ContractRole.REPUTATION, EventName.RESPONSE_APPENDED)
def handle_response_appended(ctx: HandlerContext, p: ResponseAppendedPayload) -> None:
    feedback_key = ids.feedback_id(p.agent_id, p.client_address, p.feedback_index)
    if not ctx.store.exists(Feedback, feedback_key):
        raise OrphanReferenceError("feedback", feedback_key)

    key = ids.feedback_response_id(
        p.agent_id,
        p.client_address,
        p.feedback_index,
        block_number=ctx.event.block_number,
        log_index=ctx.event.log_index,
    )
    ctx.store.save(
        FeedbackResponse(
            id=key,
            feedback=feedback_key,
            responder=p.responder,
            response_uri=p.response_uri,
            created_at=ctx.timestamp,
        )
    )

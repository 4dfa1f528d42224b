"""indexer.handlers.validation

Validation requests: created on request, terminal once answered.

A second response for the same request overwrites the first.
"""

from __future__ import annotations

from indexer.core import ids
from indexer.core.events import (
    ContractRole,
    EventName,
    ValidationRequestedPayload,
    ValidationRespondedPayload,
)
from indexer.core.exceptions import OrphanReferenceError
from indexer.core.models import ValidationRequest
from indexer.handlers.base import HandlerContext
from indexer.handlers.registry import handles


@handles(ContractRole.VALIDATION, EventName.VALIDATION_REQUESTED)
def handle_validation_requested(ctx: HandlerContext, p: ValidationRequestedPayload) -> None:
    key = ids.validation_id(p.request_hash)
    existing = ctx.store.load(ValidationRequest, key)
    request = ValidationRequest(
        id=key,
        request_hash=p.request_hash,
        agent=ids.agent_id(p.agent_id),
        validator_address=p.validator_address,
        request_uri=p.request_uri,
        created_at=ctx.timestamp,
    )
    if existing is not None:
        request = request.model_copy(
            update={
                "response": existing.response,
                "response_tag": existing.response_tag,
                "responded_at": existing.responded_at,
                "created_at": existing.created_at,
            }
        )
    ctx.store.save(request)


@handles(ContractRole.VALIDATION, EventName.VALIDATION_RESPONDED)
def handle_validation_responded(ctx: HandlerContext, p: ValidationRespondedPayload) -> None:
    key = ids.validation_id(p.request_hash)
    request = ctx.store.load(ValidationRequest, key)
    if request is None:
        raise OrphanReferenceError("validation_request", key)
    ctx.store.save(
        request.model_copy(
            update={"response": p.response, "response_tag": p.tag, "responded_at": ctx.timestamp}
        )
    )

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from api.auth import AuthDep
from api.deps import get_query
from api.errors import not_found
from api.schemas.common import ERROR_RESPONSES, Document
from api.schemas.indexer import ReputationSummaryResponse
from indexer.query import QueryService

router = APIRouter(dependencies=[AuthDep], responses=ERROR_RESPONSES)


@router.get("/agents/{agent_id}")
def get_agent(
    agent_id: int = Path(..., ge=0),
    query: QueryService = Depends(get_query),
) -> Document:
    agent = query.get_agent(agent_id)
    if agent is None:
        raise not_found("agent", agent_id)
    return agent


@router.get("/agents/{agent_id}/reputation", response_model=ReputationSummaryResponse)
def get_reputation(
    agent_id: int = Path(..., ge=0),
    tag1: str | None = Query(None),
    tag2: str | None = Query(None),
    query: QueryService = Depends(get_query),
) -> ReputationSummaryResponse:
    return ReputationSummaryResponse(**query.reputation_summary(agent_id, tag1=tag1, tag2=tag2))


@router.get("/agents/{agent_id}/feedback")
def get_feedback(
    agent_id: int = Path(..., ge=0),
    include_revoked: bool = Query(False),
    query: QueryService = Depends(get_query),
) -> dict[str, list[Document]]:
    return {"items": query.get_feedback(agent_id, include_revoked=include_revoked)}


@router.get("/validations/{request_hash}")
def get_validation(
    request_hash: str = Path(..., description="Request hash, 0x-prefixed hex"),
    query: QueryService = Depends(get_query),
) -> Document:
    validation = query.get_validation(request_hash)
    if validation is None:
        raise not_found("validation", request_hash)
    return validation

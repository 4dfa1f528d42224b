from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from api.auth import AuthDep
from api.deps import get_query
from api.errors import not_found
from api.schemas.common import ERROR_RESPONSES, Document
from indexer.query import QueryService

router = APIRouter(prefix="/customers", dependencies=[AuthDep], responses=ERROR_RESPONSES)


@router.get("/{address}")
def get_customer(
    address: str = Path(..., description="Customer wallet address"),
    query: QueryService = Depends(get_query),
) -> Document:
    customer = query.get_customer(address)
    if customer is None:
        raise not_found("customer", address)
    return customer

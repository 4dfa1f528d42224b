from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.auth import AuthDep
from api.deps import get_query
from api.schemas.common import ERROR_RESPONSES, Document, ListResponse
from indexer.query import QueryService

router = APIRouter(prefix="/products", dependencies=[AuthDep], responses=ERROR_RESPONSES)


@router.get("/search", response_model=ListResponse[Document])
def search_products(
    q: str = Query(..., min_length=1, description="Case-insensitive substring of the product name"),
    limit: int = Query(50, ge=1, le=500),
    query: QueryService = Depends(get_query),
) -> ListResponse[Document]:
    items = query.search_products(q, limit=limit)
    return ListResponse[Document](items=items, limit=limit, count=len(items))

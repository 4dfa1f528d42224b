from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from api.auth import AuthDep
from api.deps import get_query
from api.errors import not_found
from api.schemas.common import ERROR_RESPONSES, Document, ListResponse
from indexer.query import QueryService

router = APIRouter(prefix="/shops", dependencies=[AuthDep], responses=ERROR_RESPONSES)


@router.get("", response_model=ListResponse[Document])
def list_shops(
    limit: int = Query(100, ge=1, le=500),
    query: QueryService = Depends(get_query),
) -> ListResponse[Document]:
    items = query.list_shops(limit=limit)
    return ListResponse[Document](items=items, limit=limit, count=len(items))


@router.get("/{address}")
def get_shop(
    address: str = Path(..., description="Shop contract address"),
    query: QueryService = Depends(get_query),
) -> Document:
    shop = query.get_shop(address)
    if shop is None:
        raise not_found("shop", address)
    return shop


@router.get("/{address}/products/{product_id}")
def get_product(
    address: str = Path(..., description="Shop contract address"),
    product_id: int = Path(..., ge=0),
    query: QueryService = Depends(get_query),
) -> Document:
    product = query.get_product(address, product_id)
    if product is None:
        raise not_found("product", f"{address}/{product_id}")
    return product


@router.get("/{address}/orders/{order_id}")
def get_order(
    address: str = Path(..., description="Shop contract address"),
    order_id: int = Path(..., ge=0),
    query: QueryService = Depends(get_query),
) -> Document:
    order = query.get_order(address, order_id)
    if order is None:
        raise not_found("order", f"{address}/{order_id}")
    return order

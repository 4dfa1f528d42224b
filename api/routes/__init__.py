from __future__ import annotations

from fastapi import APIRouter

from api.routes import agents, customers, health, products, shops


def get_api_router() -> APIRouter:
    router = APIRouter()

    router.include_router(health.router, tags=["health"])
    router.include_router(shops.router, tags=["shops"])
    router.include_router(products.router, tags=["products"])
    router.include_router(customers.router, tags=["customers"])
    router.include_router(agents.router, tags=["agents"])

    return router

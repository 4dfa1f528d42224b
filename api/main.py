from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import ApiError, api_error_handler
from api.routes import get_api_router
from indexer import __version__
from indexer.core.config import Config
from indexer.core.exceptions import ConfigError


def create_app(config: Config | None = None) -> FastAPI:
    start = time.monotonic()

    if config is None:
        config = Config.from_repo_defaults(Path.cwd())

    # Security check: refuse to start with empty auth_token unless explicitly overridden
    insecure_ok = os.environ.get("SHOPINDEX_INSECURE_OK", "").lower() in ("1", "true", "yes")
    if not config.api.auth_token and not insecure_ok:
        msg = (
            "SECURITY ERROR: API auth_token is empty\n"
            "\n"
            "Set SHOPINDEX_API__AUTH_TOKEN environment variable or add to config:\n"
            "  api:\n"
            "    auth_token: your-secret-token\n"
            "\n"
            "To run without auth (dev/test only), set SHOPINDEX_INSECURE_OK=1"
        )
        raise RuntimeError(msg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.started_at = start
        app.state.config = getattr(app.state, "config", None) or config

        from indexer.core.database import Database

        created_db = False
        if getattr(app.state, "db", None) is None:
            app.state.db = Database(app.state.config.db_path)
            created_db = True

        yield

        if created_db:
            app.state.db.close()

    openapi_tags = [
        {"name": "health", "description": "Liveness and indexer progress."},
        {"name": "shops", "description": "Shops with their catalogue, orders and reviews."},
        {"name": "products", "description": "Cross-shop product search."},
        {"name": "customers", "description": "Order and review history per wallet."},
        {"name": "agents", "description": "Agent identities, reputation and validations."},
    ]

    app = FastAPI(
        title="shopindex API",
        description="Read-only views over the indexed commerce protocol state",
        version=__version__,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_exception_handler(ApiError, api_error_handler)

    # CORS: only enable if origins explicitly configured
    if config.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.api.cors_origins,
            allow_credentials=True,
            allow_methods=["GET"],
            allow_headers=["*"],
        )

    app.include_router(get_api_router(), prefix="/api/v1")
    return app


# Module-level app for uvicorn (e.g. `uvicorn api.main:app`).
# Guarded so test imports don't crash when auth_token isn't configured.
try:
    app = create_app()
except (RuntimeError, ConfigError):
    app = None

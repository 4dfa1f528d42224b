from __future__ import annotations

import os
import time
from pathlib import Path

from fastapi import APIRouter, Depends, Request

from api.auth import AuthDep
from api.deps import get_config, get_db, get_query
from api.schemas.common import ERROR_RESPONSES
from api.schemas.indexer import HealthResponse, StatusResponse
from indexer import __version__
from indexer.core.config import Config
from indexer.core.database import Database
from indexer.query import QueryService

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(request: Request, db: Database = Depends(get_db)) -> HealthResponse:
    started_at = float(getattr(request.app.state, "started_at", time.monotonic()))
    uptime = time.monotonic() - started_at

    db_path = Path(db.db_path)
    db_size = 0
    if db_path.exists():
        try:
            db_size = os.path.getsize(db_path)
        except OSError:
            db_size = 0

    return HealthResponse(
        version=__version__,
        uptime_seconds=uptime,
        db_size_bytes=db_size,
    )


@router.get(
    "/status",
    response_model=StatusResponse,
    dependencies=[AuthDep],
    responses={401: ERROR_RESPONSES[401]},
)
def status(
    config: Config = Depends(get_config),
    query: QueryService = Depends(get_query),
) -> StatusResponse:
    return StatusResponse(**query.status(partition=config.indexer.partition))

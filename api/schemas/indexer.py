from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class HealthResponse(BaseModel):
    version: str
    uptime_seconds: float
    db_size_bytes: int


class StatusResponse(BaseModel):
    partition: str
    cursor: list[int] | None = None
    journal_size: int
    watched_shops: int
    shops: int
    orders: int
    protocol: dict[str, Any] | None = None
    recent: list[dict[str, str]] = []


class ReputationSummaryResponse(BaseModel):
    agent_id: int
    tag1: str | None = None
    tag2: str | None = None
    count: int
    summary_value: int
    summary_value_decimals: int
    average: float | None = None
    stars: int | None = None

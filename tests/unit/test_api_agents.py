from __future__ import annotations

import pytest

from tests._chain import CLIENT, IDENTITY, OWNER, REPUTATION, VALIDATION
from tests.unit._api import AUTH, make_app, make_client

REQUEST_HASH = "0x" + "ab" * 32


@pytest.fixture()
def app(test_config, db, indexer, chain):
    indexer.ingest(chain(IDENTITY, "Registered", agentId=7, owner=OWNER, agentURI="ipfs://agent"))
    for index, value in enumerate([80, 100]):
        indexer.ingest(
            chain(
                REPUTATION,
                "NewFeedback",
                agentId=7,
                clientAddress=CLIENT,
                feedbackIndex=index,
                value=value,
                valueDecimals=0,
                tag1="starred",
                tag2="",
            )
        )
    indexer.ingest(
        chain(VALIDATION, "ValidationRequested", requestHash=REQUEST_HASH, agentId=7, validatorAddress=CLIENT)
    )
    return make_app(test_config, db)


@pytest.mark.anyio
async def test_agent_and_reputation(app):
    async with make_client(app) as ac:
        r = await ac.get("/api/v1/agents/7", headers=AUTH)
        assert r.status_code == 200
        agent = r.json()
        assert agent["owner"] == OWNER
        assert agent["validations"][0]["request_hash"] == REQUEST_HASH

        r = await ac.get("/api/v1/agents/7/reputation", params={"tag1": "starred"}, headers=AUTH)
        assert r.status_code == 200
        summary = r.json()
        assert summary["count"] == 2
        assert summary["summary_value"] == 180
        assert summary["average"] == 90
        assert summary["stars"] == 5

        r = await ac.get("/api/v1/agents/7/reputation", params={"tag1": "other"}, headers=AUTH)
        assert r.json()["count"] == 0

        r = await ac.get("/api/v1/agents/7/feedback", headers=AUTH)
        assert len(r.json()["items"]) == 2

        r = await ac.get("/api/v1/agents/8", headers=AUTH)
        assert r.status_code == 404


@pytest.mark.anyio
async def test_validation_route(app):
    async with make_client(app) as ac:
        r = await ac.get(f"/api/v1/validations/{REQUEST_HASH}", headers=AUTH)
        assert r.status_code == 200
        assert r.json()["response"] is None

        r = await ac.get("/api/v1/validations/0x01", headers=AUTH)
        assert r.status_code == 404

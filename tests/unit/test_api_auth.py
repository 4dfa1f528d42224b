from __future__ import annotations

import pytest

from api.main import create_app
from tests.unit._api import AUTH, make_app, make_client


def test_refuses_to_start_without_token(test_config, monkeypatch):
    monkeypatch.delenv("SHOPINDEX_INSECURE_OK", raising=False)
    with pytest.raises(RuntimeError):
        create_app(test_config)


def test_insecure_override_allows_empty_token(test_config, monkeypatch):
    monkeypatch.setenv("SHOPINDEX_INSECURE_OK", "1")
    assert create_app(test_config) is not None


@pytest.mark.anyio
async def test_protected_routes_require_auth(test_config, db):
    app = make_app(test_config, db)

    async with make_client(app) as ac:
        r = await ac.get("/api/v1/shops")
        assert r.status_code == 401
        assert r.json()["error"]["code"] == "auth.missing_token"

        r = await ac.get("/api/v1/shops", headers={"Authorization": "Token secret"})
        assert r.json()["error"]["code"] == "auth.invalid_header"

        r = await ac.get("/api/v1/shops", headers={"Authorization": "Bearer wrong"})
        assert r.json()["error"]["code"] == "auth.invalid_token"

        r = await ac.get("/api/v1/shops", headers=AUTH)
        assert r.status_code == 200

        r = await ac.get("/api/v1/health")
        assert r.status_code == 200

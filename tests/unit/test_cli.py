from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from indexer import __version__
from indexer.cli import build_parser, main
from tests._chain import CUSTOMER, HUB, SHOP_A, EventFactory


@pytest.fixture()
def cfg_path(tmp_path: Path) -> Path:
    p = tmp_path / "config.yaml"
    p.write_text(
        yaml.safe_dump(
            {
                "data_dir": str(tmp_path / "data"),
                "sources": {"hub": HUB},
                "logging": {"level": "WARNING", "json_output": True},
            }
        )
    )
    return p


@pytest.fixture()
def events_file(tmp_path: Path) -> Path:
    chain = EventFactory()
    events = [
        chain.shop_created(SHOP_A, name="Acme"),
        chain(SHOP_A, "ProductCreated", productId=1, name="Blue Mug", price=1000, stock=10),
        chain(SHOP_A, "OrderCreated", orderId=5, customer=CUSTOMER, totalAmount=1000),
        chain(SHOP_A, "OrderFulfilled", orderId=5),
    ]
    p = tmp_path / "events.jsonl"
    p.write_text("\n".join(ev.model_dump_json(by_alias=True) for ev in events) + "\n\n")
    return p


def _run(capsys, *argv: str) -> tuple[int, str]:
    code = main(list(argv))
    return code, capsys.readouterr().out


def test_parser_has_subcommands():
    parser = build_parser()
    args = parser.parse_args(["reorg", "--from-block", "12"])
    assert args.command == "reorg"
    assert args.from_block == 12


def test_version(capsys):
    code, out = _run(capsys, "--version")
    assert code == 0
    assert __version__ in out


def test_no_command_prints_help(capsys):
    code, out = _run(capsys)
    assert code == 2
    assert "ingest" in out


def test_ingest_then_query(capsys, cfg_path, events_file):
    code, out = _run(capsys, "--config", str(cfg_path), "ingest", str(events_file))
    assert code == 0
    assert json.loads(out)["applied"] == 4

    code, out = _run(capsys, "--config", str(cfg_path), "shop", SHOP_A)
    assert code == 0
    shop = json.loads(out)
    assert shop["name"] == "Acme"
    assert shop["orders"][0]["status"] == "Fulfilled"

    code, out = _run(capsys, "--config", str(cfg_path), "search", "mug")
    assert [p["name"] for p in json.loads(out)] == ["Blue Mug"]

    code, out = _run(capsys, "--config", str(cfg_path), "status")
    assert json.loads(out)["journal_size"] == 4

    # Re-ingesting the same file is idempotent.
    code, out = _run(capsys, "--config", str(cfg_path), "ingest", str(events_file))
    assert code == 0
    assert json.loads(out)["duplicate"] == 4


def test_rebuild_and_reorg(capsys, cfg_path, events_file):
    _run(capsys, "--config", str(cfg_path), "ingest", str(events_file))

    code, out = _run(capsys, "--config", str(cfg_path), "rebuild")
    assert code == 0
    assert json.loads(out)["applied"] == 4

    code, out = _run(capsys, "--config", str(cfg_path), "reorg", "--from-block", "103")
    assert code == 0
    result = json.loads(out)
    assert result["dropped"] == 2
    assert result["journal_size"] == 2


def test_ingest_missing_file(capsys, cfg_path, tmp_path):
    code = main(["--config", str(cfg_path), "ingest", str(tmp_path / "nope.jsonl")])
    assert code == 2
    assert "not found" in capsys.readouterr().err


def test_ingest_rejects_malformed_line(capsys, cfg_path, tmp_path):
    p = tmp_path / "bad.jsonl"
    p.write_text('{"address": "0xa0", "name": "ShopCreated"}\n')
    code = main(["--config", str(cfg_path), "ingest", str(p)])
    assert code == 2
    assert "bad.jsonl:1" in capsys.readouterr().err


def test_unknown_shop_exits_nonzero(capsys, cfg_path, events_file):
    _run(capsys, "--config", str(cfg_path), "ingest", str(events_file))
    assert main(["--config", str(cfg_path), "shop", "0x00000000000000000000000000000000000000ff"]) == 1


def test_status_without_db(capsys, cfg_path):
    code, out = _run(capsys, "--config", str(cfg_path), "status")
    assert code == 0
    assert "missing" in out


def test_missing_config_file(capsys, tmp_path):
    assert main(["--config", str(tmp_path / "nope.yaml"), "status"]) == 2


def test_json_log_lines_carry_extra_fields():
    import logging

    from indexer.cli import _JsonFormatter

    record = logging.makeLogRecord({"msg": "event_rejected", "levelname": "WARNING", "reason": "invalid_payload"})
    line = json.loads(_JsonFormatter().format(record))
    assert line["msg"] == "event_rejected"
    assert line["reason"] == "invalid_payload"
    assert "args" not in line


def _with_api(cfg_path: Path, **api) -> Path:
    raw = yaml.safe_load(cfg_path.read_text())
    raw["api"] = api
    cfg_path.write_text(yaml.safe_dump(raw))
    return cfg_path


def test_api_serves_the_selected_config(monkeypatch, cfg_path, tmp_path):
    import uvicorn

    seen = {}

    def fake_run(app, **kwargs):
        seen["app"] = app
        seen.update(kwargs)

    monkeypatch.setattr(uvicorn, "run", fake_run)
    _with_api(cfg_path, auth_token="t0ken", port=6001)

    assert main(["--config", str(cfg_path), "api"]) == 0
    served = seen["app"].state.config
    assert served.db_path == tmp_path / "data" / "index.db"
    assert served.api.auth_token == "t0ken"
    assert seen["port"] == 6001


def test_api_refuses_to_start_without_token(monkeypatch, capsys, cfg_path):
    import uvicorn

    monkeypatch.delenv("SHOPINDEX_INSECURE_OK", raising=False)
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: pytest.fail("server started"))

    assert main(["--config", str(cfg_path), "api"]) == 2
    assert "auth_token is empty" in capsys.readouterr().err

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from indexer.core.config import Config, SourcesConfig
from indexer.core.exceptions import ConfigError

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_repo_default_config_loads() -> None:
    cfg = Config.from_yaml(REPO_ROOT / "config" / "default.yaml")
    assert cfg.indexer.partition == "main"
    assert cfg.sources.hub == cfg.sources.hub.lower()
    assert cfg.sources.hub.startswith("0x")
    assert cfg.db_path == Path("data") / "index.db"


def test_user_yaml_overlays_defaults(tmp_path: Path) -> None:
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    (cfg_dir / "default.yaml").write_text("indexer:\n  partition: main\n  db_filename: index.db\n")
    (cfg_dir / "user.yaml").write_text("indexer:\n  db_filename: other.db\napi:\n  port: 9000\n")

    cfg = Config.from_repo_defaults(tmp_path)
    assert cfg.indexer.partition == "main"
    assert cfg.indexer.db_filename == "other.db"
    assert cfg.api.port == 9000


def test_config_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHOPINDEX_API__PORT", "7777")
    monkeypatch.setenv("SHOPINDEX_SOURCES__HUB", "0xABCDEF")
    cfg = Config()  # BaseSettings reads env
    assert cfg.api.port == 7777
    assert cfg.sources.hub == "0xabcdef"


def test_config_from_yaml_raises_if_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        Config.from_yaml(tmp_path / "missing.yaml")


def test_config_from_yaml_rejects_non_mapping(tmp_path: Path) -> None:
    p = tmp_path / "bad.yaml"
    p.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        Config.from_yaml(p)


def test_config_from_yaml_rejects_invalid_yaml(tmp_path: Path) -> None:
    p = tmp_path / "broken.yaml"
    p.write_text("sources: [unclosed\n")
    with pytest.raises(ConfigError):
        Config.from_yaml(p)


def test_sources_validation() -> None:
    with pytest.raises(ValidationError):
        SourcesConfig(hub="not-an-address")
    with pytest.raises(ValidationError):
        SourcesConfig(start_block=-1)
    assert SourcesConfig(identity_registry=" 0xAB ").identity_registry == "0xab"


def test_env_overrides_values_set_in_yaml(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHOPINDEX_API__AUTH_TOKEN", "s3cret")
    monkeypatch.setenv("SHOPINDEX_INDEXER__PARTITION", "replica")
    cfg = Config.from_repo_defaults(REPO_ROOT)
    assert cfg.api.auth_token == "s3cret"
    assert cfg.indexer.partition == "replica"
    # Sibling keys from YAML survive the nested override.
    assert cfg.api.port == 5060
    assert cfg.indexer.db_filename == "index.db"


@pytest.mark.parametrize("body", ["api: [unclosed\n", "- just\n- a list\n"])
def test_bad_user_yaml_raises_config_error(tmp_path: Path, body: str) -> None:
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    (cfg_dir / "default.yaml").write_text("indexer:\n  partition: main\n")
    (cfg_dir / "user.yaml").write_text(body)
    with pytest.raises(ConfigError):
        Config.from_repo_defaults(tmp_path)

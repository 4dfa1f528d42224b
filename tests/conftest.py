from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# uv/pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from indexer.core.config import Config  # noqa: E402
from indexer.core.database import Database  # noqa: E402
from indexer.core.sources import SourceRegistry  # noqa: E402
from indexer.ingestion import Indexer  # noqa: E402
from tests._chain import HUB, IDENTITY, REPUTATION, VALIDATION, EventFactory  # noqa: E402


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def test_config(temp_dir: Path) -> Config:
    """Config fixture that points data_dir to a temp directory and wires test contract addresses."""

    cfg_src = REPO_ROOT / "config" / "default.yaml"
    cfg_dst_dir = temp_dir / "config"
    cfg_dst_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(cfg_src, cfg_dst_dir / "default.yaml")

    c = Config.from_yaml(
        cfg_dst_dir / "default.yaml",
        overlay={
            "sources": {
                "hub": HUB,
                "identity_registry": IDENTITY,
                "reputation_registry": REPUTATION,
                "validation_registry": VALIDATION,
            }
        },
    )
    return c.model_copy(update={"data_dir": temp_dir / "data", "config_dir": cfg_dst_dir})


@pytest.fixture()
def db(temp_dir: Path) -> Iterator[Database]:
    database = Database(temp_dir / "index.db")
    yield database
    database.close()


@pytest.fixture()
def sources() -> SourceRegistry:
    return SourceRegistry(
        hub=HUB,
        identity_registry=IDENTITY,
        reputation_registry=REPUTATION,
        validation_registry=VALIDATION,
    )


@pytest.fixture()
def indexer(db: Database, sources: SourceRegistry) -> Indexer:
    return Indexer(db=db, sources=sources)


@pytest.fixture()
def chain() -> EventFactory:
    return EventFactory()

"""indexer.cli

Command line interface entry point for shopindex.

Design constraints:
- argparse-based.
- Lazy imports: do not import heavy dependencies at parse time.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from indexer.core.config import Config
    from indexer.core.events import ChainEvent

_RESERVED_LOG_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


@dataclass(frozen=True)
class CliContext:
    repo_root: Path
    config_path: Path | None = None


def _repo_root_from_cwd() -> Path:
    return Path.cwd()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shopindex",
        description="Event indexer for the onchain commerce protocol.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: config/user.yaml over config/default.yaml).",
    )

    sub = parser.add_subparsers(dest="command")

    p_ingest = sub.add_parser("ingest", help="Ingest a JSON Lines file of chain events, in order")
    p_ingest.add_argument("file", type=Path)

    sub.add_parser("rebuild", help="Drop derived state and replay the journal")

    p_reorg = sub.add_parser("reorg", help="Forget events from a block onward and replay the rest")
    p_reorg.add_argument("--from-block", type=int, required=True)

    sub.add_parser("status", help="Print indexer status")

    p_shop = sub.add_parser("shop", help="Print one shop with its catalogue and orders")
    p_shop.add_argument("address")

    p_search = sub.add_parser("search", help="Search active products by name")
    p_search.add_argument("text")
    p_search.add_argument("--limit", type=int, default=50)

    p_api = sub.add_parser("api", help="Start FastAPI server")
    p_api.add_argument("--host", default=None)
    p_api.add_argument("--port", type=int, default=None)

    return parser


def _print_version() -> None:
    from indexer import __version__

    print(f"shopindex v{__version__}")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _load_config(ctx: CliContext) -> Config:
    from indexer.core.config import Config

    if ctx.config_path is not None:
        return Config.from_yaml(ctx.config_path)
    if (ctx.repo_root / "config" / "default.yaml").exists():
        return Config.from_repo_defaults(ctx.repo_root)
    return Config()


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in vars(record).items():
            if k not in _RESERVED_LOG_ATTRS:
                payload[k] = v
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _configure_logging(config: Config) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if config.logging.json_output:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(config.logging.level.upper())


def _read_events(path: Path) -> list[ChainEvent]:
    from indexer.core.events import ChainEvent

    events: list[ChainEvent] = []
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                events.append(ChainEvent.model_validate_json(line))
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: {e}") from e
    return events


def _cmd_ingest(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.core.exceptions import IndexerError
    from indexer.ingestion import Indexer

    if not args.file.exists():
        print(f"error: events file not found: {args.file}", file=sys.stderr)
        return 2
    try:
        events = _read_events(args.file)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    indexer = Indexer.from_config(_load_config(ctx))
    try:
        stats = indexer.ingest_many(events)
    except IndexerError as e:
        print(f"ingest halted: {e}", file=sys.stderr)
        return 1
    finally:
        indexer.close()

    _print_json(stats.as_dict())
    return 0


def _cmd_rebuild(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.ingestion import Indexer

    indexer = Indexer.from_config(_load_config(ctx))
    try:
        stats = indexer.rebuild()
    finally:
        indexer.close()
    _print_json(stats.as_dict())
    return 0


def _cmd_reorg(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.ingestion import Indexer

    if args.from_block < 0:
        print("error: --from-block must be >= 0", file=sys.stderr)
        return 2

    indexer = Indexer.from_config(_load_config(ctx))
    try:
        dropped = indexer.handle_reorg(from_block=args.from_block)
        status = indexer.status()
    finally:
        indexer.close()
    _print_json({"dropped": dropped, **status})
    return 0


def _cmd_status(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.core.database import Database
    from indexer.query import QueryService

    config = _load_config(ctx)
    if not config.db_path.exists():
        print(f"db: {config.db_path} (missing)")
        return 0

    db = Database(config.db_path)
    try:
        _print_json({"db": str(config.db_path), **QueryService(db).status(partition=config.indexer.partition)})
    finally:
        db.close()
    return 0


def _cmd_shop(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.core.database import Database
    from indexer.query import QueryService

    db = Database(_load_config(ctx).db_path)
    try:
        shop = QueryService(db).get_shop(args.address)
    finally:
        db.close()
    if shop is None:
        print(f"shop not found: {args.address}", file=sys.stderr)
        return 1
    _print_json(shop)
    return 0


def _cmd_search(ctx: CliContext, args: argparse.Namespace) -> int:
    from indexer.core.database import Database
    from indexer.query import QueryService

    db = Database(_load_config(ctx).db_path)
    try:
        _print_json(QueryService(db).search_products(args.text, limit=args.limit))
    finally:
        db.close()
    return 0


def _cmd_api(ctx: CliContext, args: argparse.Namespace) -> int:
    config = _load_config(ctx)

    host = args.host or config.api.host
    port = args.port or config.api.port

    import uvicorn

    from api.main import create_app

    try:
        app = create_app(config)
    except RuntimeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    uvicorn.run(app, host=host, port=port, reload=False)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    ctx = CliContext(repo_root=_repo_root_from_cwd(), config_path=args.config)

    dispatch: dict[str, Callable[[CliContext, argparse.Namespace], int]] = {
        "ingest": _cmd_ingest,
        "rebuild": _cmd_rebuild,
        "reorg": _cmd_reorg,
        "status": _cmd_status,
        "shop": _cmd_shop,
        "search": _cmd_search,
        "api": _cmd_api,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    from indexer.core.exceptions import ConfigError

    try:
        _configure_logging(_load_config(ctx))
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    return int(fn(ctx, args))


if __name__ == "__main__":
    raise SystemExit(main())

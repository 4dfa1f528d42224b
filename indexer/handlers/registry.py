"""indexer.handlers.registry

Every event type reports to exactly one handler.

Registry responsibilities:
- @handles(role, name) decorator
- lookup helpers
- module auto-discovery (import indexer.handlers.* to trigger decorators)

A (role, name) pair with no handler is not an error: the dispatcher ignores it.
"""

from __future__ import annotations

import importlib
import pkgutil
from collections.abc import Callable

from indexer.core.events import ContractRole, EventName, payload_model_for
from indexer.handlers.base import Handler

_REGISTRY: dict[tuple[ContractRole, EventName], Handler] = {}
_DISCOVERED = False


def handles(role: ContractRole, name: EventName) -> Callable[[Handler], Handler]:
    if payload_model_for(role, name) is None:
        raise ValueError(f"no payload schema for {role}.{name}")

    def _decorator(fn: Handler) -> Handler:
        key = (role, name)
        if key in _REGISTRY and _REGISTRY[key] is not fn:
            raise ValueError(f"handler already registered: {role}.{name}")
        _REGISTRY[key] = fn
        return fn

    return _decorator


def discover() -> None:
    global _DISCOVERED
    if _DISCOVERED:
        return

    pkg_name = "indexer.handlers"
    pkg = importlib.import_module(pkg_name)

    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{pkg_name}."):
        modname = m.name
        if modname.endswith(".base") or modname.endswith(".registry"):
            continue
        importlib.import_module(modname)

    _DISCOVERED = True


def get_handler(role: ContractRole, name: str) -> Handler | None:
    discover()
    try:
        return _REGISTRY.get((role, EventName(name)))
    except ValueError:
        return None


def list_handlers() -> list[tuple[ContractRole, EventName]]:
    discover()
    return sorted(_REGISTRY)

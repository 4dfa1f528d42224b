"""indexer.core.sources

Which contracts are we listening to?

Two kinds of source:
- static roles from config (hub, identity, reputation, validation registries)
- shops, discovered at runtime from the hub's ``ShopCreated`` events

Registration is idempotent. A watch registered while an event is being applied is
staged, visible immediately to that event, and becomes durable only when the
indexer commits the event. If the event fails, the watch is dropped with it.
"""

from __future__ import annotations

import threading

from indexer.core.config import SourcesConfig
from indexer.core.database import Database
from indexer.core.events import ContractRole


class SourceRegistry:
    def __init__(
        self,
        *,
        hub: str = "",
        identity_registry: str = "",
        reputation_registry: str = "",
        validation_registry: str = "",
    ) -> None:
        self._lock = threading.RLock()
        self._static: dict[str, ContractRole] = {}
        for address, role in (
            (hub, ContractRole.HUB),
            (identity_registry, ContractRole.IDENTITY),
            (reputation_registry, ContractRole.REPUTATION),
            (validation_registry, ContractRole.VALIDATION),
        ):
            if address:
                self._static[address.lower()] = role
        self._watched: dict[str, int] = {}
        self._pending: dict[str, int] = {}

    @classmethod
    def from_config(cls, config: SourcesConfig) -> SourceRegistry:
        return cls(
            hub=config.hub,
            identity_registry=config.identity_registry,
            reputation_registry=config.reputation_registry,
            validation_registry=config.validation_registry,
        )

    def register_watch(self, address: str, *, start_block: int = 0) -> bool:
        """Start accepting shop events from ``address``.

        Returns False if the address is already watched (or staged).
        """

        addr = address.lower()
        with self._lock:
            if addr in self._watched or addr in self._pending:
                return False
            self._pending[addr] = int(start_block)
            return True

    def is_watched(self, address: str) -> bool:
        addr = address.lower()
        with self._lock:
            return addr in self._watched or addr in self._pending

    def role_of(self, address: str) -> ContractRole | None:
        addr = address.lower()
        with self._lock:
            role = self._static.get(addr)
            if role is not None:
                return role
            if addr in self._watched or addr in self._pending:
                return ContractRole.SHOP
        return None

    def watched(self) -> list[str]:
        with self._lock:
            return sorted(self._watched)

    # -----------------
    # Unit-of-work hooks (driven by the indexer)
    # -----------------

    def pending_rows(self) -> list[tuple[str, str, int]]:
        with self._lock:
            return [(addr, str(ContractRole.SHOP), blk) for addr, blk in self._pending.items()]

    def commit_pending(self) -> None:
        with self._lock:
            self._watched.update(self._pending)
            self._pending.clear()

    def discard_pending(self) -> None:
        with self._lock:
            self._pending.clear()

    def load(self, db: Database) -> int:
        """Replace the dynamic watch list with what ``db`` has persisted."""

        rows = db.load_watches()
        with self._lock:
            self._watched = {addr: blk for addr, role, blk in rows if role == ContractRole.SHOP}
            self._pending.clear()
            return len(self._watched)

    def clear_dynamic(self) -> None:
        with self._lock:
            self._watched.clear()
            self._pending.clear()

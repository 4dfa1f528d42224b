"""indexer.handlers.base

Handlers are pure state transitions: (store state, event payload) → new records.

They never reach outside the store. Everything a handler may know is in the event
envelope, the validated payload, or the records it can load.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from indexer.core import ids
from indexer.core.events import ChainEvent
from indexer.core.exceptions import OrphanReferenceError
from indexer.core.models import Shop
from indexer.core.order_sm import OrderStateMachine
from indexer.core.sources import SourceRegistry
from indexer.core.store import EntityStore


@dataclass(frozen=True, slots=True)
class HandlerContext:
    """Shared context injected into every handler invocation."""

    store: EntityStore
    sources: SourceRegistry
    event: ChainEvent
    logger: logging.Logger
    orders: OrderStateMachine = field(default_factory=OrderStateMachine)

    @property
    def shop_address(self) -> str:
        return ids.shop_id(self.event.address)

    @property
    def timestamp(self) -> int:
        return self.event.block_timestamp

    def require_shop(self) -> Shop:
        shop = self.store.load(Shop, self.shop_address)
        if shop is None:
            raise OrphanReferenceError("shop", self.shop_address)
        return shop


Handler = Callable[[HandlerContext, Any], None]

"""indexer.dispatcher

Single entry point for an event: classify, validate, route.

Classification is by (emitting contract role, event name). The role comes from the
source registry; the handler from the handler registry. Outcomes:

- applied:  the handler ran and its writes are staged in the store
- ignored:  no handler for this (role, name); future contract versions add events
- rejected: shop event from an unwatched address, or arguments that fail validation
- skipped:  the handler found a missing parent and declined to write

The dispatcher never reorders. It relies on the caller delivering events in chain order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from indexer.core.database import AuditRow
from indexer.core.events import SHOP_EVENT_NAMES, ChainEvent, ContractRole, payload_model_for
from indexer.core.exceptions import HandlerError, OrphanReferenceError
from indexer.core.order_sm import OrderStateMachine
from indexer.core.sources import SourceRegistry
from indexer.core.store import EntityStore
from indexer.handlers.base import HandlerContext
from indexer.handlers.registry import get_handler

_log = logging.getLogger(__name__)


class DispatchOutcome(StrEnum):
    APPLIED = "applied"
    IGNORED = "ignored"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"


@dataclass(frozen=True, slots=True)
class DispatchResult:
    outcome: DispatchOutcome
    role: ContractRole | None = None
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def audit_row(self, event: ChainEvent) -> AuditRow | None:
        if self.outcome not in {DispatchOutcome.REJECTED, DispatchOutcome.SKIPPED}:
            return None
        return AuditRow(
            action=f"{self.outcome}.{self.reason}",
            component="dispatcher",
            details={"address": event.address, "name": event.name, **self.details},
            dedupe_key=event.dedupe_key(),
            block_number=event.block_number,
        )


class Dispatcher:
    def __init__(
        self,
        sources: SourceRegistry,
        *,
        logger: logging.Logger | None = None,
        orders: OrderStateMachine | None = None,
    ) -> None:
        self.sources = sources
        self.logger = logger or _log
        self.orders = orders or OrderStateMachine()

    def dispatch(self, event: ChainEvent, store: EntityStore) -> DispatchResult:
        role = self.sources.role_of(event.address)
        if role is None:
            if event.name in SHOP_EVENT_NAMES:
                return self._reject(event, None, "unregistered_source")
            self.logger.debug("event_ignored", extra={"address": event.address, "event": event.name})
            return DispatchResult(DispatchOutcome.IGNORED, reason="unknown_source")

        handler = get_handler(role, event.name)
        model = payload_model_for(role, event.name)
        if handler is None or model is None:
            self.logger.debug(
                "event_ignored", extra={"role": str(role), "address": event.address, "event": event.name}
            )
            return DispatchResult(DispatchOutcome.IGNORED, role=role, reason="unknown_event")

        try:
            payload = model.model_validate(event.args)
        except ValidationError as e:
            errors = [{"loc": [str(x) for x in err["loc"]], "msg": err["msg"]} for err in e.errors()]
            return self._reject(event, role, "invalid_payload", errors=errors)

        ctx = HandlerContext(
            store=store,
            sources=self.sources,
            event=event,
            logger=self.logger,
            orders=self.orders,
        )
        try:
            handler(ctx, payload)
        except OrphanReferenceError as e:
            store.discard()
            self.sources.discard_pending()
            self.logger.warning(
                "orphan_reference_skipped",
                extra={"event": event.name, "position": event.dedupe_key(), "missing": e.kind, "key": e.key},
            )
            return DispatchResult(
                DispatchOutcome.SKIPPED,
                role=role,
                reason="orphan_reference",
                details={"missing": e.kind, "key": e.key},
            )
        except HandlerError as e:
            store.discard()
            self.sources.discard_pending()
            self.logger.warning(
                "handler_declined", extra={"event": event.name, "position": event.dedupe_key(), "error": str(e)}
            )
            return DispatchResult(DispatchOutcome.SKIPPED, role=role, reason="handler_error", details={"error": str(e)})

        return DispatchResult(DispatchOutcome.APPLIED, role=role)

    def _reject(self, event: ChainEvent, role: ContractRole | None, reason: str, **details: Any) -> DispatchResult:
        self.logger.warning(
            "event_rejected",
            extra={"reason": reason, "address": event.address, "event": event.name, "position": event.dedupe_key()},
        )
        return DispatchResult(DispatchOutcome.REJECTED, role=role, reason=reason, details=details)

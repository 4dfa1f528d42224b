"""indexer.core.order_sm

Order status state machine.

Paid → Fulfilled → Completed, with side branches Paid → Cancelled and
Paid → Refunded (escrow timeout). Completed, Cancelled and Refunded are terminal.

The indexer never sees ``Created``: by the time ``OrderCreated`` is emitted the
funds are already held by the shop, so the first observable status is ``Paid``.

Events that target a status the order already holds, has moved past, or can no
longer reach are no-ops. Redelivery and late delivery are normal; they must not
move an order backwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final


class OrderStatus(StrEnum):
    CREATED = "Created"
    PAID = "Paid"
    FULFILLED = "Fulfilled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class OrderTrigger(StrEnum):
    FULFILLED = "fulfilled"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


INITIAL_STATUS: Final = OrderStatus.PAID

TERMINAL_STATUSES: Final[frozenset[OrderStatus]] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

TRANSITIONS: Final[dict[OrderTrigger, dict[OrderStatus, OrderStatus]]] = {
    OrderTrigger.FULFILLED: {OrderStatus.PAID: OrderStatus.FULFILLED},
    OrderTrigger.DELIVERED: {
        OrderStatus.PAID: OrderStatus.COMPLETED,
        OrderStatus.FULFILLED: OrderStatus.COMPLETED,
    },
    OrderTrigger.CANCELLED: {OrderStatus.PAID: OrderStatus.CANCELLED},
    OrderTrigger.REFUNDED: {OrderStatus.PAID: OrderStatus.REFUNDED},
}


@dataclass(frozen=True, slots=True)
class OrderTransition:
    previous: OrderStatus
    new: OrderStatus
    trigger: OrderTrigger


class OrderStateMachine:
    def next_status(self, *, state: OrderStatus, trigger: OrderTrigger) -> OrderTransition | None:
        """Return the transition for ``trigger``, or None when it is a no-op."""

        new_state = TRANSITIONS[trigger].get(state)
        if new_state is None:
            return None
        return OrderTransition(previous=state, new=new_state, trigger=trigger)

    def is_terminal(self, state: OrderStatus) -> bool:
        return state in TERMINAL_STATUSES

    def is_forward(self, previous: OrderStatus, new: OrderStatus) -> bool:
        """True if ``new`` is ``previous`` or reachable from it."""

        if previous == new:
            return True
        frontier = {previous}
        seen: set[OrderStatus] = set()
        while frontier:
            s = frontier.pop()
            seen.add(s)
            for table in TRANSITIONS.values():
                nxt = table.get(s)
                if nxt is None or nxt in seen:
                    continue
                if nxt == new:
                    return True
                frontier.add(nxt)
        return False

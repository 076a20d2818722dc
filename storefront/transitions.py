"""Order status transition table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import InvalidTransition
from .models import OrderStatus


@dataclass(frozen=True)
class TransitionRule:
    """Side effects applied when a transition is taken."""

    restock: bool = False
    settle_cash_on_delivery: bool = False
    refund_payment: bool = False
    admin_only: bool = True


FULFILMENT_CHAIN: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})


def _build_transitions() -> Dict[Tuple[OrderStatus, OrderStatus], TransitionRule]:
    table: Dict[Tuple[OrderStatus, OrderStatus], TransitionRule] = {}
    for index, current in enumerate(FULFILMENT_CHAIN[:-1]):
        for target in FULFILMENT_CHAIN[index + 1 :]:
            table[(current, target)] = TransitionRule(settle_cash_on_delivery=target is OrderStatus.DELIVERED)
    for current in CANCELLABLE_STATUSES:
        table[(current, OrderStatus.CANCELLED)] = TransitionRule(restock=True, admin_only=False)
    for current in FULFILMENT_CHAIN:
        if current not in TERMINAL_STATUSES:
            table[(current, OrderStatus.REFUNDED)] = TransitionRule(refund_payment=True)
    return table


TRANSITIONS = _build_transitions()


def resolve_transition(current: OrderStatus, requested: OrderStatus) -> TransitionRule:
    """Look up the rule for moving from ``current`` to ``requested``."""

    current = OrderStatus(current)
    requested = OrderStatus(requested)
    rule = TRANSITIONS.get((current, requested))
    if rule is not None:
        return rule
    if requested is OrderStatus.CANCELLED:
        raise InvalidTransition(current.value, requested.value, "Order cannot be cancelled at this stage")
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(current.value, requested.value, f"Order is already {current.value}")
    raise InvalidTransition(current.value, requested.value)


def allowed_targets(current: OrderStatus) -> list[OrderStatus]:
    return [target for (source, target) in TRANSITIONS if source is OrderStatus(current)]

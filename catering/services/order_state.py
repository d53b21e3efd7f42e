from __future__ import annotations

from dataclasses import dataclass

from catering.errors import InvalidStateTransition
from catering.services.order_store import OrderStatus, PaymentStatus, normalize_status


ALLOWED = {
    OrderStatus.PENDING: {
        OrderStatus.ACCEPTED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
        OrderStatus.CANCELLED_BEFORE_ACCEPT,
    },
    OrderStatus.ACCEPTED: {OrderStatus.PREPARING, OrderStatus.SHIPPING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.SHIPPING, OrderStatus.CANCELLED},
    OrderStatus.SHIPPING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.REJECTED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.CANCELLED_BEFORE_ACCEPT: set(),
}


@dataclass(frozen=True)
class TransitionResult:
    current: str
    target: str
    changed: bool


def can_transition(order_status: str, payment_status: str, target: str) -> bool:
    current = normalize_status(order_status)
    to_state = normalize_status(target)
    if to_state not in ALLOWED.get(current, set()):
        return False
    if to_state == OrderStatus.COMPLETED:
        return (payment_status or "").strip().lower() == PaymentStatus.PAID
    return True


def transition(order_status: str, payment_status: str, target: str) -> TransitionResult:
    """Validate moving an order from ``order_status`` to ``target``.

    Asking for the state the order is already in, or for a terminal state on
    an order that is already terminal, is a no-op (``changed=False``).
    Anything else outside the transition table raises
    ``InvalidStateTransition``.
    """
    current = normalize_status(order_status)
    to_state = normalize_status(target)
    if to_state not in OrderStatus.ALL:
        raise InvalidStateTransition(current, to_state)
    if current == to_state:
        return TransitionResult(current=current, target=to_state, changed=False)
    if current in OrderStatus.TERMINAL and to_state in OrderStatus.TERMINAL:
        return TransitionResult(current=current, target=to_state, changed=False)
    if not can_transition(current, payment_status, to_state):
        raise InvalidStateTransition(current, to_state)
    return TransitionResult(current=current, target=to_state, changed=True)

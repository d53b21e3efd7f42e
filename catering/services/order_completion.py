from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from catering.errors import InvalidStateTransition, OrderNotFound
from catering.services import order_store
from catering.services.notification_fanout import (
    ORDER_AUTO_CONFIRMED,
    ORDER_CANCELLED,
    ORDER_CONFIRM_REMINDER,
    dispatch_order_event,
)
from catering.services.order_state import transition
from catering.services.order_store import OrderSnapshot, OrderStatus, PaymentStatus
from catering.services.task_scheduler import cancel_completion_tasks, schedule_completion_tasks

logger = logging.getLogger(__name__)

CONFIRMATION_AUTO = "auto"
CONFIRMATION_MANUAL = "manual"
SETTLEMENT_PENDING = "pending"


@dataclass
class CompletionOutcome:
    ok: bool
    skipped: bool = False
    reason: str = ""


@dataclass
class StatusUpdate:
    order_id: str
    order_status: str
    changed: bool
    reminder_task_id: str | None = None
    auto_complete_task_id: str | None = None


def _callback_skip_reason(order: OrderSnapshot | None) -> str | None:
    if order is None:
        return "order_not_found"
    if order.order_status == OrderStatus.COMPLETED or order.confirmed_at is not None:
        return "already_completed"
    if order.is_terminal:
        return f"status_{order.order_status}"
    if order.order_status != OrderStatus.SHIPPING:
        return "not_shipping"
    return None


def _skip(order_id: str, job: str, reason: str) -> CompletionOutcome:
    logger.info("%s_skipped order_id=%s reason=%s", job, order_id, reason)
    return CompletionOutcome(ok=True, skipped=True, reason=reason)


def _notify(order: OrderSnapshot, event: str) -> None:
    # Runs after the state write has committed; a failure here is logged only.
    try:
        dispatch_order_event(order_store.get_order(order.id) or order, event)
    except Exception:
        logger.exception("order_event_dispatch_failed order_id=%s event=%s", order.id, event)


def _completion_guard() -> dict:
    return {
        "order_status": OrderStatus.SHIPPING,
        "confirmed_at": None,
        "payment_status": PaymentStatus.PAID,
    }


def auto_complete_order(order_id: str, now: datetime | None = None) -> CompletionOutcome:
    """Confirm a delivered order on the buyer's behalf.

    Every precondition that does not hold is a successful skip, so duplicate
    deliveries from the task queue are harmless. Store failures propagate so
    the queue retries.
    """
    order = order_store.get_order(order_id)
    reason = _callback_skip_reason(order)
    if reason:
        return _skip(order_id, "auto_complete", reason)
    if not order.is_paid:
        return _skip(order_id, "auto_complete", f"payment_{order.payment_status}")

    transition(order.order_status, order.payment_status, OrderStatus.COMPLETED)
    changed = order_store.update_order(
        order_id,
        {
            "order_status": OrderStatus.COMPLETED,
            "confirmed_at": now or datetime.utcnow(),
            "confirmation_type": CONFIRMATION_AUTO,
            "settlement_status": SETTLEMENT_PENDING,
        },
        expect=_completion_guard(),
    )
    if not changed:
        return _skip(order_id, "auto_complete", "lost_race")
    logger.info("auto_complete_done order_id=%s order_number=%s", order_id, order.order_number)

    _notify(order, ORDER_AUTO_CONFIRMED)
    return CompletionOutcome(ok=True)


def send_confirmation_reminder(order_id: str, now: datetime | None = None) -> CompletionOutcome:
    order = order_store.get_order(order_id)
    reason = _callback_skip_reason(order)
    if reason:
        return _skip(order_id, "confirmation_reminder", reason)
    if order.notification_sent:
        return _skip(order_id, "confirmation_reminder", "already_notified")

    claimed = order_store.update_order(
        order_id,
        {"notification_sent": True, "notification_sent_at": now or datetime.utcnow()},
        expect={"notification_sent": False, "order_status": OrderStatus.SHIPPING},
    )
    if not claimed:
        return _skip(order_id, "confirmation_reminder", "already_notified")

    _notify(order, ORDER_CONFIRM_REMINDER)
    logger.info("confirmation_reminder_sent order_id=%s", order_id)
    return CompletionOutcome(ok=True)


def confirm_order(order_id: str, uid: str, now: datetime | None = None) -> CompletionOutcome:
    """Buyer confirms receipt. Raises ``PermissionError`` for a non-owner."""
    order = order_store.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if order.uid != uid:
        raise PermissionError("not_order_owner")
    if order.confirmed_at is not None:
        return _skip(order_id, "confirm", "already_confirmed")

    result = transition(order.order_status, order.payment_status, OrderStatus.COMPLETED)
    if not result.changed:
        return _skip(order_id, "confirm", "already_completed")
    changed = order_store.update_order(
        order_id,
        {
            "order_status": OrderStatus.COMPLETED,
            "confirmed_at": now or datetime.utcnow(),
            "confirmation_type": CONFIRMATION_MANUAL,
            "settlement_status": SETTLEMENT_PENDING,
        },
        expect=_completion_guard(),
    )
    if not changed:
        return _skip(order_id, "confirm", "lost_race")
    logger.info("order_confirmed order_id=%s uid=%s", order_id, uid)

    cancel_completion_tasks(order_id, [order.notification_task_id, order.auto_complete_task_id])
    return CompletionOutcome(ok=True)


def update_order_status(
    order_id: str,
    status: str,
    *,
    tracking_info: dict | None = None,
    now: datetime | None = None,
) -> StatusUpdate:
    order = order_store.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)

    result = transition(order.order_status, order.payment_status, status)
    if not result.changed:
        return StatusUpdate(
            order_id=order_id,
            order_status=order.order_status,
            changed=False,
            reminder_task_id=order.notification_task_id,
            auto_complete_task_id=order.auto_complete_task_id,
        )

    target = result.target
    stamp = now or datetime.utcnow()
    fields: dict = {"order_status": target}
    if tracking_info is not None:
        fields["tracking_info"] = tracking_info
    if target == OrderStatus.SHIPPING:
        fields["shipping_started_at"] = stamp
    if target == OrderStatus.COMPLETED:
        fields["confirmed_at"] = stamp
        fields["confirmation_type"] = CONFIRMATION_MANUAL
        fields["settlement_status"] = SETTLEMENT_PENDING

    if not order_store.update_order(order_id, fields, expect={"order_status": order.order_status}):
        current = order_store.get_order(order_id)
        raise InvalidStateTransition(current.order_status if current else order.order_status, target)
    logger.info("order_status_updated order_id=%s from=%s to=%s", order_id, order.order_status, target)

    update = StatusUpdate(order_id=order_id, order_status=target, changed=True)
    if target == OrderStatus.SHIPPING:
        _schedule_after_shipping(order, update)
    elif target in OrderStatus.TERMINAL:
        cancel_completion_tasks(order_id, [order.notification_task_id, order.auto_complete_task_id])
        if target in (OrderStatus.CANCELLED, OrderStatus.CANCELLED_BEFORE_ACCEPT, OrderStatus.REJECTED):
            _notify(order, ORDER_CANCELLED)
    return update


def _schedule_after_shipping(order: OrderSnapshot, update: StatusUpdate) -> None:
    if not order.delivery_date:
        logger.warning("completion_tasks_not_scheduled order_id=%s reason=no_delivery_date", order.id)
        return
    try:
        pair = schedule_completion_tasks(order.id, order.delivery_method, order.delivery_date, order.delivery_time or None)
    except Exception:
        # The status change stands; the order can still be confirmed manually.
        logger.exception("completion_tasks_schedule_failed order_id=%s", order.id)
        return
    order_store.update_order(
        order.id,
        {"notification_task_id": pair.reminder_task_id, "auto_complete_task_id": pair.auto_complete_task_id},
    )
    update.reminder_task_id = pair.reminder_task_id
    update.auto_complete_task_id = pair.auto_complete_task_id


def cancel_order(order_id: str, uid: str, *, is_admin: bool = False) -> StatusUpdate:
    """Buyer (or admin) cancellation: before acceptance it is recorded as
    ``cancelled_before_accept``."""
    order = order_store.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    if not is_admin and order.uid != uid:
        raise PermissionError("not_order_owner")
    target = OrderStatus.CANCELLED_BEFORE_ACCEPT if order.order_status == OrderStatus.PENDING else OrderStatus.CANCELLED
    return update_order_status(order_id, target)

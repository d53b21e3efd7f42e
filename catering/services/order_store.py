"""Typed read/write boundary over the ``orders`` table.

Rows leave this module as frozen ``OrderSnapshot`` values; anything the rest
of the pipeline cannot interpret (unknown status, malformed JSON entries) is
rejected here with ``InvalidOrderDocument``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from catering.errors import ExternalServiceTimeout, InvalidOrderDocument
from catering.extensions import db
from catering.models import Order

logger = logging.getLogger(__name__)


class OrderStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CANCELLED_BEFORE_ACCEPT = "cancelled_before_accept"

    ALL = {PENDING, ACCEPTED, REJECTED, PREPARING, SHIPPING, COMPLETED, CANCELLED, CANCELLED_BEFORE_ACCEPT}
    TERMINAL = {REJECTED, CANCELLED, CANCELLED_BEFORE_ACCEPT, COMPLETED}
    ALIASES = {"delivered": COMPLETED}


class PaymentStatus:
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"

    ALL = {UNPAID, PAID, REFUNDED, FAILED}


DELIVERY_METHOD_ALIASES = {
    "parcel": "parcel",
    "택배": "parcel",
    "택배 배송": "parcel",
    "택배배송": "parcel",
    "quick": "quick",
    "퀵": "quick",
    "퀵 배송": "quick",
    "퀵배송": "quick",
    "pickup": "pickup",
    "픽업": "pickup",
    "매장 픽업": "pickup",
    "직접 픽업": "pickup",
}


def normalize_status(value: str | None) -> str:
    status = (value or "").strip().lower()
    return OrderStatus.ALIASES.get(status, status)


def normalize_delivery_method(value: str | None) -> str:
    raw = (value or "").strip()
    return DELIVERY_METHOD_ALIASES.get(raw.lower(), DELIVERY_METHOD_ALIASES.get(raw, raw.lower()))


@dataclass(frozen=True)
class OrderItem:
    product_name: str
    quantity: int
    unit_price: int
    is_add_item: bool
    payment_id: str | None
    raw: dict


@dataclass(frozen=True)
class PaymentRecord:
    payment_id: str
    status: str
    amount: int
    used_point: int
    method: str
    raw: dict


@dataclass(frozen=True)
class OrderSnapshot:
    id: str
    order_number: str
    uid: str
    store_id: str
    store_name: str
    partner_id: str
    partner_phone: str
    phone: str
    order_status: str
    payment_status: str
    items: tuple[OrderItem, ...]
    payments: tuple[PaymentRecord, ...]
    payment_ids: tuple[str, ...]
    order_dates: tuple[dict, ...]
    used_point: int
    total_price: int
    total_product_price: int
    total_quantity: int
    delivery_fee: int
    delivery_method: str
    delivery_date: str
    delivery_time: str
    confirmed_at: datetime | None
    confirmation_type: str | None
    settlement_status: str | None
    notification_task_id: str | None
    auto_complete_task_id: str | None
    notification_sent: bool

    @property
    def is_terminal(self) -> bool:
        return self.order_status in OrderStatus.TERMINAL

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def product_name(self) -> str:
        if not self.items:
            return ""
        first = self.items[0].product_name
        if len(self.items) == 1:
            return first
        return f"{first} 외 {len(self.items) - 1}건"


def _int_field(order_id: str, field: str, value) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidOrderDocument(order_id, field, f"not an integer: {value!r}")


def _list_field(order_id: str, field: str, value) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidOrderDocument(order_id, field, "expected a list")
    return value


def _item(order_id: str, idx: int, raw) -> OrderItem:
    if not isinstance(raw, dict):
        raise InvalidOrderDocument(order_id, f"items[{idx}]", "expected an object")
    pid = raw.get("paymentId")
    return OrderItem(
        product_name=str(raw.get("productName") or raw.get("name") or ""),
        quantity=_int_field(order_id, f"items[{idx}].quantity", raw.get("quantity")),
        unit_price=_int_field(order_id, f"items[{idx}].unitPrice", raw.get("unitPrice", raw.get("price"))),
        is_add_item=bool(raw.get("isAddItem", False)),
        payment_id=str(pid) if pid else None,
        raw=dict(raw),
    )


def _payment(order_id: str, idx: int, payment_id, raw) -> PaymentRecord:
    if not isinstance(raw, dict):
        raise InvalidOrderDocument(order_id, f"paymentInfo[{idx}]", "expected an object")
    if not isinstance(payment_id, str) or not payment_id:
        raise InvalidOrderDocument(order_id, f"paymentId[{idx}]", "expected a non-empty string")
    return PaymentRecord(
        payment_id=payment_id,
        status=str(raw.get("status") or "").strip().lower(),
        amount=_int_field(order_id, f"paymentInfo[{idx}].amount", raw.get("amount")),
        used_point=_int_field(order_id, f"paymentInfo[{idx}].usedPoint", raw.get("usedPoint")),
        method=str(raw.get("method") or raw.get("pay_method") or ""),
        raw=dict(raw),
    )


def snapshot_from_row(row: Order) -> OrderSnapshot:
    oid = row.id
    order_status = normalize_status(row.order_status)
    if order_status not in OrderStatus.ALL:
        raise InvalidOrderDocument(oid, "orderStatus", f"unknown value {row.order_status!r}")
    payment_status = (row.payment_status or PaymentStatus.UNPAID).strip().lower()
    if payment_status not in PaymentStatus.ALL:
        raise InvalidOrderDocument(oid, "paymentStatus", f"unknown value {row.payment_status!r}")

    payment_info = _list_field(oid, "paymentInfo", row.payment_info)
    payment_ids = _list_field(oid, "paymentId", row.payment_id)
    if len(payment_info) != len(payment_ids):
        raise InvalidOrderDocument(oid, "paymentInfo", f"length {len(payment_info)} != paymentId length {len(payment_ids)}")

    items = tuple(_item(oid, i, raw) for i, raw in enumerate(_list_field(oid, "items", row.items)))
    payments = tuple(_payment(oid, i, pid, raw) for i, (pid, raw) in enumerate(zip(payment_ids, payment_info)))
    order_dates = _list_field(oid, "orderDates", row.order_dates)

    return OrderSnapshot(
        id=oid,
        order_number=row.order_number or "",
        uid=row.uid or "",
        store_id=row.store_id or "",
        store_name=row.store_name or "",
        partner_id=row.partner_id or "",
        partner_phone=row.partner_phone or "",
        phone=row.phone or "",
        order_status=order_status,
        payment_status=payment_status,
        items=items,
        payments=payments,
        payment_ids=tuple(payment_ids),
        order_dates=tuple(dict(d) for d in order_dates if isinstance(d, dict)),
        used_point=_int_field(oid, "usedPoint", row.used_point),
        total_price=_int_field(oid, "totalPrice", row.total_price),
        total_product_price=_int_field(oid, "totalProductPrice", row.total_product_price),
        total_quantity=_int_field(oid, "totalQuantity", row.total_quantity),
        delivery_fee=_int_field(oid, "deliveryFee", row.delivery_fee),
        delivery_method=normalize_delivery_method(row.delivery_method),
        delivery_date=row.delivery_date or "",
        delivery_time=row.delivery_time or "",
        confirmed_at=row.confirmed_at,
        confirmation_type=row.confirmation_type,
        settlement_status=row.settlement_status,
        notification_task_id=row.notification_task_id,
        auto_complete_task_id=row.auto_complete_task_id,
        notification_sent=bool(row.notification_sent),
    )


def get_order(order_id: str) -> OrderSnapshot | None:
    if not order_id:
        return None
    try:
        row = db.session.get(Order, order_id)
    except OperationalError as exc:
        db.session.rollback()
        raise ExternalServiceTimeout("order_store", str(exc)[:200]) from exc
    if row is None:
        return None
    return snapshot_from_row(row)


def update_order(order_id: str, fields: dict, expect: dict | None = None) -> bool:
    """Write ``fields`` onto the order; with ``expect``, only when every
    expected column still holds the given value (``None`` means IS NULL).

    Returns False when the order is missing or a precondition no longer holds.
    """
    if not fields:
        return False
    stmt = update(Order).where(Order.id == order_id)
    for column, value in (expect or {}).items():
        col = getattr(Order, column)
        stmt = stmt.where(col.is_(None) if value is None else col == value)
    values = dict(fields)
    values.setdefault("updated_at", datetime.utcnow())
    stmt = stmt.values(**values).execution_options(synchronize_session=False)
    try:
        result = db.session.execute(stmt)
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        raise ExternalServiceTimeout("order_store", str(exc)[:200]) from exc
    except SQLAlchemyError:
        db.session.rollback()
        raise
    # Rows loaded earlier in this session must not shadow the new values.
    db.session.expire_all()
    changed = int(result.rowcount or 0) > 0
    if not changed:
        logger.info("order_update_no_match order_id=%s expect=%s", order_id, sorted((expect or {}).keys()))
    return changed

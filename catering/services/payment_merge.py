"""Folding a verified payment into an order's payment arrays.

``merge_payment`` is pure: it takes a snapshot and returns the new field
values. ``apply_payment`` loads the order, merges, writes, debits points for
a new payment id and fans out the order-placed notifications.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

from catering.errors import OrderNotFound, PaymentUnverified
from catering.services import order_store, points_ledger
from catering.services.notification_fanout import dispatch_order_placed
from catering.services.order_store import OrderSnapshot, PaymentStatus

logger = logging.getLogger(__name__)

POINT_ONLY = "POINT_ONLY"


@dataclass
class IncomingPayment:
    payment_id: str | None
    status: str
    amount: int = 0
    method: str = ""
    raw: dict = field(default_factory=dict)


@dataclass
class SupplementalOrder:
    items: list[dict]
    total_product_price: int = 0
    total_quantity: int = 0
    total_price: int = 0
    batch_key: str = ""  # client-supplied id of the additional order, when it sends one


@dataclass
class MergeResult:
    payment_info: list[dict]
    payment_id: list[str]
    items: list[dict]
    order_dates: list[dict]
    totals: dict
    resolved_payment_id: str
    payment_id_added: bool
    already_merged: bool = False

    def to_fields(self) -> dict:
        return {
            "payment_status": PaymentStatus.PAID,
            "payment_info": self.payment_info,
            "payment_id": self.payment_id,
            "items": self.items,
            "order_dates": self.order_dates,
            "total_product_price": self.totals["totalProductPrice"],
            "total_quantity": self.totals["totalQuantity"],
            "total_price": self.totals["totalPrice"],
            "used_point": self.totals["usedPoint"],
        }


def _is_point_only(incoming: IncomingPayment | None) -> bool:
    if incoming is None:
        return True
    pid = (incoming.payment_id or "").strip()
    return not pid or pid == POINT_ONLY


def _point_only_id(is_supplemental: bool, supplemental: SupplementalOrder | None, used_point: int) -> str:
    """Stable id for a checkout paid entirely with points.

    The original batch always resolves to ``POINT_ONLY``. A supplemental batch
    is keyed by the client's additional-order id, or else by a digest of its
    contents, so a replayed request resolves to the id it already merged.
    """
    if not is_supplemental:
        return POINT_ONLY
    extra = supplemental or SupplementalOrder(items=[])
    key = (extra.batch_key or "").strip()
    if not key:
        body = json.dumps(
            {
                "items": extra.items,
                "totalProductPrice": extra.total_product_price,
                "totalQuantity": extra.total_quantity,
                "totalPrice": extra.total_price,
                "usedPoint": used_point,
            },
            sort_keys=True,
            ensure_ascii=False,
            default=str,
        )
        key = hashlib.sha256(body.encode("utf-8")).hexdigest()[:16]
    return f"{POINT_ONLY}-{key}"


def _totals(order: OrderSnapshot) -> dict:
    return {
        "totalProductPrice": order.total_product_price,
        "totalQuantity": order.total_quantity,
        "totalPrice": order.total_price,
        "usedPoint": order.used_point,
    }


def merge_payment(
    order: OrderSnapshot,
    incoming: IncomingPayment | None,
    used_point: int = 0,
    is_supplemental: bool = False,
    supplemental: SupplementalOrder | None = None,
    now: datetime | None = None,
) -> MergeResult:
    used_point = max(0, int(used_point or 0))
    payment_ids = list(order.payment_ids)
    payment_info = [dict(p.raw) for p in order.payments]
    items = [dict(i.raw) for i in order.items]

    if _is_point_only(incoming):
        if used_point <= 0:
            raise PaymentUnverified("", "missing_payment_id")
        resolved = _point_only_id(is_supplemental, supplemental, used_point)
        record = {"amount": 0, "usedPoint": used_point, "status": PaymentStatus.PAID, "method": "point"}
    else:
        resolved = incoming.payment_id.strip()
        status = (incoming.status or "").strip().lower()
        if status != PaymentStatus.PAID:
            raise PaymentUnverified(resolved, f"status={status or 'unknown'}")
        record = dict(incoming.raw or {})
        record.update({"amount": int(incoming.amount or 0), "status": status})
        if incoming.method:
            record.setdefault("method", incoming.method)
        if used_point:
            record["usedPoint"] = used_point

    if resolved in payment_ids:
        return MergeResult(
            payment_info=payment_info,
            payment_id=payment_ids,
            items=items,
            order_dates=[dict(d) for d in order.order_dates],
            totals=_totals(order),
            resolved_payment_id=resolved,
            payment_id_added=False,
            already_merged=True,
        )

    payment_info.append(record)
    payment_ids.append(resolved)
    stamp = (now or datetime.utcnow()).isoformat()
    totals = _totals(order)

    if is_supplemental:
        extra = supplemental or SupplementalOrder(items=[])
        for raw in extra.items:
            items.append({**raw, "paymentId": resolved, "isAddItem": True})
        totals["totalProductPrice"] += int(extra.total_product_price or 0)
        totals["totalQuantity"] += int(extra.total_quantity or 0)
        totals["totalPrice"] += int(extra.total_price or 0)
        totals["usedPoint"] += used_point
    else:
        items = [
            item if item.get("paymentId") else {**item, "paymentId": resolved, "isAddItem": False}
            for item in items
        ]
        if not totals["usedPoint"]:
            totals["usedPoint"] = used_point

    order_dates = [dict(d) for d in order.order_dates]
    order_dates.append({"type": "additional" if is_supplemental else "regular", "paymentId": resolved, "createdAt": stamp})

    return MergeResult(
        payment_info=payment_info,
        payment_id=payment_ids,
        items=items,
        order_dates=order_dates,
        totals=totals,
        resolved_payment_id=resolved,
        payment_id_added=True,
    )


@dataclass
class PaymentOutcome:
    order_id: str
    order_number: str
    payment_id: str
    already_merged: bool
    points_debited: int = 0


def apply_payment(
    order_id: str,
    incoming: IncomingPayment | None,
    *,
    used_point: int | None = None,
    is_supplemental: bool = False,
    supplemental: SupplementalOrder | None = None,
) -> PaymentOutcome:
    order = order_store.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)

    if used_point is None:
        used_point = 0 if is_supplemental else order.used_point
    merged = merge_payment(order, incoming, used_point, is_supplemental, supplemental)
    if merged.already_merged:
        logger.info("payment_already_merged order_id=%s payment_id=%s", order_id, merged.resolved_payment_id)
        return PaymentOutcome(
            order_id=order_id,
            order_number=order.order_number,
            payment_id=merged.resolved_payment_id,
            already_merged=True,
        )

    fields = merged.to_fields()
    fields["verified_at"] = datetime.utcnow()
    if not order_store.update_order(order_id, fields):
        raise OrderNotFound(order_id)
    logger.info(
        "payment_merged order_id=%s payment_id=%s supplemental=%s slots=%s",
        order_id,
        merged.resolved_payment_id,
        is_supplemental,
        len(merged.payment_id),
    )

    debited = 0
    if merged.payment_id_added and used_point > 0 and order.uid:
        try:
            result = points_ledger.debit(order.uid, order_id, merged.resolved_payment_id, used_point)
            debited = used_point if result.applied else 0
        except Exception:
            # The payment is recorded; a failed debit is repaired from the logs.
            logger.exception(
                "points_debit_failed order_id=%s payment_id=%s amount=%s",
                order_id,
                merged.resolved_payment_id,
                used_point,
            )

    updated = order_store.get_order(order_id)
    if updated is not None:
        dispatch_order_placed(
            updated,
            is_additional=is_supplemental,
            additional=supplemental,
        )

    return PaymentOutcome(
        order_id=order_id,
        order_number=order.order_number,
        payment_id=merged.resolved_payment_id,
        already_merged=False,
        points_debited=debited,
    )

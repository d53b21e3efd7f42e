from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from catering.errors import ExternalServiceTimeout, OrderNotFound, PaymentUnverified
from catering.integrations.clients import get_clients
from catering.services.payment_merge import POINT_ONLY, IncomingPayment, SupplementalOrder, apply_payment

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _supplemental_from(payload: dict) -> SupplementalOrder | None:
    if not bool(payload.get("isAdditionalOrder")):
        return None
    items = payload.get("additionalItems") or payload.get("items") or []
    if not isinstance(items, list):
        items = []
    return SupplementalOrder(
        items=[i for i in items if isinstance(i, dict)],
        total_product_price=_int(payload.get("additionalProductPrice")),
        total_quantity=_int(payload.get("additionalQuantity")),
        total_price=_int(payload.get("additionalTotalPrice", payload.get("additionalProductPrice"))),
        batch_key=str(payload.get("additionalOrderId") or "").strip(),
    )


def _verify(payment_id: str) -> IncomingPayment:
    provider = get_clients().payments
    if provider is None:
        raise PaymentUnverified(payment_id, "payments_disabled")
    try:
        verified = provider.verify(payment_id)
    except RuntimeError as exc:
        current_app.logger.warning("payment_verify_failed payment_id=%s err=%s", payment_id, exc)
        raise PaymentUnverified(payment_id, str(exc)[:120])
    return IncomingPayment(
        payment_id=verified.payment_id,
        status=verified.status,
        amount=verified.amount,
        method=verified.method,
        raw=verified.to_record(),
    )


@payments_bp.post("/complete")
def complete_payment():
    payload = request.get_json(silent=True) or {}
    order_id = str(payload.get("orderId") or "").strip()
    payment_id = str(payload.get("imp_uid") or payload.get("paymentId") or "").strip()
    used_point = payload.get("usedPoint")
    used_point = _int(used_point) if used_point is not None else None
    if not order_id:
        return jsonify({"ok": False, "message": "orderId required"}), 400
    if not payment_id and not used_point:
        return jsonify({"ok": False, "message": "imp_uid or usedPoint required"}), 400

    supplemental = _supplemental_from(payload)
    try:
        incoming = None if (not payment_id or payment_id == POINT_ONLY) else _verify(payment_id)
        outcome = apply_payment(
            order_id,
            incoming,
            used_point=used_point,
            is_supplemental=supplemental is not None,
            supplemental=supplemental,
        )
    except OrderNotFound:
        return jsonify({"ok": False, "message": "order not found"}), 404
    except PaymentUnverified as exc:
        return jsonify({"ok": False, "message": "payment verification failed", "reason": exc.reason}), 400
    except ExternalServiceTimeout:
        current_app.logger.exception("payment_complete_store_unavailable order_id=%s", order_id)
        return jsonify({"ok": False, "message": "order store unavailable"}), 503

    return jsonify(
        {
            "ok": True,
            "success": True,
            "orderId": outcome.order_id,
            "orderNumber": outcome.order_number,
            "paymentId": outcome.payment_id,
            "alreadyProcessed": outcome.already_merged,
            "pointsDebited": outcome.points_debited,
        }
    ), 200


@payments_bp.post("/cancel")
def cancel_payment():
    payload = request.get_json(silent=True) or {}
    payment_id = str(payload.get("imp_uid") or payload.get("paymentId") or "").strip()
    if not payment_id:
        return jsonify({"ok": False, "message": "imp_uid required"}), 400
    provider = get_clients().payments
    if provider is None:
        return jsonify({"ok": False, "message": "payments disabled"}), 503
    amount = payload.get("amount")
    try:
        result = provider.cancel(
            payment_id,
            reason=str(payload.get("reason") or ""),
            amount=_int(amount) if amount is not None else None,
        )
    except RuntimeError as exc:
        current_app.logger.warning("payment_cancel_failed payment_id=%s err=%s", payment_id, exc)
        return jsonify({"ok": False, "message": "Failed to cancel payment"}), 502
    return jsonify(
        {
            "ok": True,
            "success": True,
            "cancellation": {
                "imp_uid": result.payment_id,
                "status": result.status,
                "cancel_amount": result.cancelled_amount,
            },
        }
    ), 200

from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from catering.errors import ExternalServiceTimeout, InvalidOrderDocument, InvalidStateTransition, OrderNotFound
from catering.integrations.clients import get_clients
from catering.services import order_store
from catering.services.order_completion import (
    auto_complete_order,
    cancel_order,
    confirm_order,
    send_confirmation_reminder,
    update_order_status,
)
from catering.utils.auth import current_user, task_secret_ok
from catering.utils.job_runs import record_job_run

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")


def _order_id_from_body() -> str:
    payload = request.get_json(silent=True) or {}
    return str(payload.get("orderId") or "").strip()


def _status_payload(update) -> dict:
    return {
        "ok": True,
        "orderId": update.order_id,
        "orderStatus": update.order_status,
        "changed": update.changed,
        "notificationTaskId": update.reminder_task_id,
        "autoCompleteTaskId": update.auto_complete_task_id,
    }


def _run_callback(job_name: str, handler):
    if not task_secret_ok(get_clients().settings.task_callback_secret):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    order_id = _order_id_from_body()
    if not order_id:
        return jsonify({"ok": False, "message": "orderId required"}), 400

    started = datetime.utcnow()
    try:
        outcome = handler(order_id)
    except (ExternalServiceTimeout, InvalidOrderDocument) as exc:
        # Non-2xx makes the task queue redeliver.
        current_app.logger.exception("%s_failed order_id=%s", job_name, order_id)
        record_job_run(job_name=job_name, ok=False, started_at=started, order_id=order_id, outcome="failed", error=str(exc))
        return jsonify({"ok": False, "message": "temporarily unavailable"}), 500

    label = f"skipped:{outcome.reason}" if outcome.skipped else "done"
    record_job_run(job_name=job_name, ok=True, started_at=started, order_id=order_id, outcome=label)
    return jsonify(
        {
            "ok": True,
            "success": True,
            "orderId": order_id,
            "skipped": outcome.skipped,
            "reason": outcome.reason,
        }
    ), 200


@orders_bp.post("/auto-complete")
def auto_complete():
    return _run_callback("auto_complete", auto_complete_order)


@orders_bp.post("/send-confirmation-reminder")
def confirmation_reminder():
    return _run_callback("confirmation_reminder", send_confirmation_reminder)


@orders_bp.post("/update-status")
def update_status():
    user = current_user()
    if not user:
        return jsonify({"ok": False, "message": "Unauthorized"}), 401
    payload = request.get_json(silent=True) or {}
    order_id = str(payload.get("orderId") or "").strip()
    status = str(payload.get("status") or payload.get("orderStatus") or "").strip()
    if not order_id or not status:
        return jsonify({"ok": False, "message": "orderId and status required"}), 400

    order = order_store.get_order(order_id)
    if order is None:
        return jsonify({"ok": False, "message": "order not found"}), 404
    if not user.is_admin and order.partner_id != user.id:
        return jsonify({"ok": False, "message": "Forbidden"}), 403

    tracking_info = payload.get("trackingInfo")
    try:
        update = update_order_status(
            order_id,
            status,
            tracking_info=tracking_info if isinstance(tracking_info, dict) else None,
        )
    except OrderNotFound:
        return jsonify({"ok": False, "message": "order not found"}), 404
    except InvalidStateTransition as exc:
        return jsonify({"ok": False, "message": str(exc), "from": exc.current, "to": exc.target}), 409
    return jsonify(_status_payload(update)), 200


@orders_bp.post("/confirm")
def confirm():
    user = current_user()
    if not user:
        return jsonify({"ok": False, "message": "Unauthorized"}), 401
    order_id = _order_id_from_body()
    if not order_id:
        return jsonify({"ok": False, "message": "orderId required"}), 400
    try:
        outcome = confirm_order(order_id, user.id)
    except OrderNotFound:
        return jsonify({"ok": False, "message": "order not found"}), 404
    except PermissionError:
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    except InvalidStateTransition as exc:
        return jsonify({"ok": False, "message": str(exc), "from": exc.current, "to": exc.target}), 409
    return jsonify({"ok": True, "success": True, "orderId": order_id, "skipped": outcome.skipped, "reason": outcome.reason}), 200


@orders_bp.post("/cancel")
def cancel():
    user = current_user()
    if not user:
        return jsonify({"ok": False, "message": "Unauthorized"}), 401
    order_id = _order_id_from_body()
    if not order_id:
        return jsonify({"ok": False, "message": "orderId required"}), 400
    try:
        update = cancel_order(order_id, user.id, is_admin=user.is_admin)
    except OrderNotFound:
        return jsonify({"ok": False, "message": "order not found"}), 404
    except PermissionError:
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    except InvalidStateTransition as exc:
        return jsonify({"ok": False, "message": str(exc), "from": exc.current, "to": exc.target}), 409
    return jsonify(_status_payload(update)), 200

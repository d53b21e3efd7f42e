from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from catering.extensions import db
from catering.utils.auth import current_user

users_bp = Blueprint("users_bp", __name__, url_prefix="/api/users")


@users_bp.post("/fcm-token")
def update_fcm_token():
    user = current_user()
    if not user:
        return jsonify({"ok": False, "message": "Unauthorized"}), 401
    payload = request.get_json(silent=True) or {}
    token = str(payload.get("token") or payload.get("fcmToken") or "").strip()
    if not token:
        return jsonify({"ok": False, "message": "token required"}), 400
    user.fcm_token = token[:512]
    db.session.commit()
    current_app.logger.info("fcm_token_updated user_id=%s", user.id)
    return jsonify({"ok": True, "user": user.to_dict()}), 200


@users_bp.delete("/fcm-token")
def clear_fcm_token():
    user = current_user()
    if not user:
        return jsonify({"ok": False, "message": "Unauthorized"}), 401
    user.fcm_token = None
    db.session.commit()
    return jsonify({"ok": True, "user": user.to_dict()}), 200

from __future__ import annotations

import hmac

from flask import g, request

from catering.extensions import db
from catering.models import User
from catering.utils.jwt_utils import decode_token, get_bearer_token


def current_user() -> User | None:
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    sub = str(payload.get("sub") or "").strip()
    if not sub:
        return None
    user = db.session.get(User, sub)
    if user is not None:
        g.auth_user_id = user.id
    return user


def task_secret_ok(secret: str) -> bool:
    """Callback requests must echo ``X-Task-Secret`` when a secret is configured."""
    if not secret:
        return True
    supplied = (request.headers.get("X-Task-Secret") or "").strip()
    return hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8"))

import os
import time
import logging
from typing import Optional, Dict, Any

import jwt

logger = logging.getLogger(__name__)

ACCESS_TTL_SECONDS = 60 * 60 * 24 * 7
_LEEWAY_SECONDS = 30


def _secret() -> str:
    return os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or "dev-secret-change-me"


def create_token(user_id: str, ttl_seconds: int = ACCESS_TTL_SECONDS) -> str:
    """Access token for the app clients; ``sub`` is the user id string."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + int(ttl_seconds),
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, _secret(), algorithms=["HS256"], leeway=_LEEWAY_SECONDS)
    except jwt.ExpiredSignatureError:
        logger.info("jwt_expired")
        return None
    except jwt.InvalidTokenError:
        return None
    if payload.get("type", "access") != "access":
        return None
    return payload


def get_bearer_token(auth_header: str) -> Optional[str]:
    scheme, _, token = (auth_header or "").strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None

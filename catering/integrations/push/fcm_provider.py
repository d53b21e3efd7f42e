from __future__ import annotations

import os

import requests

from catering.errors import TokenInvalid
from catering.integrations.push.base import PushProvider, PushResult


FCM_BASE = "https://fcm.googleapis.com/v1/projects"

_INVALID_TOKEN_MARKERS = (
    "not a valid fcm registration token",
    "registration-token-not-registered",
    "requested entity was not found",
    "unregistered",
)


def _is_invalid_token(status: int, detail: str) -> bool:
    msg = (detail or "").lower()
    if status == 404:
        return True
    return any(marker in msg for marker in _INVALID_TOKEN_MARKERS)


class FcmPushProvider(PushProvider):
    name = "fcm"

    def __init__(self, *, project_id: str, access_token: str, timeout: int = 10):
        self.project_id = project_id
        self.access_token = access_token
        self.timeout = timeout

    def send(self, *, token: str, title: str, body: str, data: dict | None = None) -> PushResult:
        # FCM data payload values must be strings.
        payload = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": {str(k): str(v) for k, v in (data or {}).items()},
            }
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            r = requests.post(
                f"{FCM_BASE}/{self.project_id}/messages:send",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout:
            return PushResult(ok=False, code="PUSH_PROVIDER_DOWN", message="timeout")
        except requests.RequestException as e:
            return PushResult(ok=False, code="PUSH_PROVIDER_DOWN", message=str(e)[:200])

        j = r.json() if r.content else {}
        if not isinstance(j, dict):
            j = {"payload": j}
        if 200 <= r.status_code < 300:
            return PushResult(ok=True, code="OK", message="sent", message_id=str(j.get("name") or ""), raw=j)

        err = j.get("error") or {}
        detail = str(err.get("message") or err.get("status") or f"http_{r.status_code}")
        if r.status_code in (400, 404) and _is_invalid_token(r.status_code, f"{detail} {err.get('status') or ''}"):
            raise TokenInvalid(detail)
        if r.status_code in (401, 403):
            return PushResult(ok=False, code="PUSH_AUTH_FAILED", message=detail[:200], raw=j)
        return PushResult(ok=False, code="PUSH_PROVIDER_DOWN", message=detail[:200], raw=j)


def fcm_health() -> dict:
    missing = []
    if not (os.getenv("FCM_PROJECT_ID") or "").strip():
        missing.append("FCM_PROJECT_ID")
    if not (os.getenv("FCM_ACCESS_TOKEN") or "").strip():
        missing.append("FCM_ACCESS_TOKEN")
    return {"missing": missing}

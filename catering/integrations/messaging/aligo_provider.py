from __future__ import annotations

import json
import logging
import os
import re

import requests

from catering.integrations.messaging.base import MessagingProvider, MessageResult


ALIGO_ALIMTALK_BASE = "https://kakaoapi.aligo.in/akv10"

logger = logging.getLogger(__name__)

_VARIABLE_RE = re.compile(r"#\{([^}]+)\}")


def render_template(content: str, variables: dict) -> str:
    """Fill ``#{name}`` placeholders; unknown names are left as-is."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return _VARIABLE_RE.sub(_sub, content or "")


class AligoMessagingProvider(MessagingProvider):
    name = "aligo"

    def __init__(self, *, api_key: str, user_id: str, sender_key: str, sender: str, timeout: int = 10):
        self.api_key = api_key
        self.user_id = user_id
        self.sender_key = sender_key
        self.sender = sender
        self.timeout = timeout
        self._templates: dict[str, dict] = {}

    def _auth(self) -> dict:
        return {"apikey": self.api_key, "userid": self.user_id, "senderkey": self.sender_key}

    def _fetch_template(self, template_code: str) -> dict | None:
        cached = self._templates.get(template_code)
        if cached is not None:
            return cached
        r = requests.post(
            f"{ALIGO_ALIMTALK_BASE}/template/list/",
            data={**self._auth(), "tpl_code": template_code},
            timeout=self.timeout,
        )
        data = r.json() if r.content else {}
        items = data.get("list") if isinstance(data, dict) else None
        if int(data.get("code", -1)) != 0 or not items:
            logger.warning("aligo_template_lookup_failed tpl=%s message=%s", template_code, data.get("message"))
            return None
        tpl = {"content": items[0].get("templtContent") or "", "buttons": items[0].get("buttons") or []}
        self._templates[template_code] = tpl
        return tpl

    def send_templated(self, *, phone: str, template_code: str, variables: dict) -> MessageResult:
        receiver = re.sub(r"[^0-9]", "", phone or "")
        try:
            tpl = self._fetch_template(template_code)
            if tpl is None:
                return MessageResult(ok=False, code="ALIMTALK_TEMPLATE_NOT_FOUND", message=template_code)
            form = {
                **self._auth(),
                "tpl_code": template_code,
                "sender": self.sender,
                "receiver_1": receiver,
                "subject_1": "주문알림",
                "message_1": render_template(tpl["content"], variables or {}),
            }
            if tpl["buttons"]:
                form["button_1"] = json.dumps({"button": tpl["buttons"]}, ensure_ascii=False)
            r = requests.post(f"{ALIGO_ALIMTALK_BASE}/alimtalk/send/", data=form, timeout=self.timeout)
            data = r.json() if r.content else {}
            if not isinstance(data, dict):
                data = {"payload": data}
            if r.status_code >= 500:
                return MessageResult(ok=False, code="ALIMTALK_PROVIDER_DOWN", message=f"http_{r.status_code}", raw=data)
            # Aligo reports success as code == 0 in the body, regardless of HTTP status.
            if int(data.get("code", -1)) == 0:
                return MessageResult(ok=True, code="OK", message="sent", raw=data)
            return MessageResult(
                ok=False,
                code="ALIMTALK_REJECTED",
                message=str(data.get("message") or "rejected")[:200],
                raw=data,
            )
        except requests.Timeout:
            return MessageResult(ok=False, code="ALIMTALK_PROVIDER_DOWN", message="timeout")
        except requests.RequestException as e:
            return MessageResult(ok=False, code="ALIMTALK_PROVIDER_DOWN", message=str(e)[:200])


def aligo_health() -> dict:
    missing = []
    for key in ("ALIGO_API_KEY", "ALIGO_USER_ID", "ALIGO_SENDER_KEY", "ALIGO_SENDER"):
        if not (os.getenv(key) or "").strip():
            missing.append(key)
    return {"missing": missing}

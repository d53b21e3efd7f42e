from __future__ import annotations

import os

from catering.integrations.messaging.base import MessagingProvider, MessageResult


class MockMessagingProvider(MessagingProvider):
    name = "mock"

    def __init__(self):
        self.sent: list[dict] = []

    def _force_failure(self, template_code: str) -> bool:
        return "[fail]" in (template_code or "").lower() or (os.getenv("MOCK_NOTIFY_FORCE_FAIL") or "").strip() == "1"

    def send_templated(self, *, phone: str, template_code: str, variables: dict) -> MessageResult:
        if self._force_failure(template_code):
            return MessageResult(ok=False, code="ALIMTALK_PROVIDER_DOWN", message="mock forced failure")
        record = {"phone": phone, "template_code": template_code, "variables": dict(variables or {})}
        self.sent.append(record)
        return MessageResult(ok=True, code="OK", message="mock_sent", raw=record)

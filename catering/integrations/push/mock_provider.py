from __future__ import annotations

from catering.errors import TokenInvalid
from catering.integrations.push.base import PushProvider, PushResult


class MockPushProvider(PushProvider):
    name = "mock"

    def __init__(self):
        self.sent: list[dict] = []

    def send(self, *, token: str, title: str, body: str, data: dict | None = None) -> PushResult:
        tok = (token or "").strip()
        if tok.startswith("invalid"):
            raise TokenInvalid(f"registration-token-not-registered {tok}")
        if tok.startswith("fail"):
            return PushResult(ok=False, code="PUSH_PROVIDER_DOWN", message="mock forced failure")
        record = {"token": tok, "title": title, "body": body, "data": dict(data or {})}
        self.sent.append(record)
        return PushResult(ok=True, code="OK", message="mock_sent", message_id=f"mock-{len(self.sent)}", raw=record)

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PushResult:
    ok: bool
    code: str = ""
    message: str = ""
    message_id: str = ""
    raw: dict | None = None


class PushProvider:
    """Device push delivery.

    ``send`` raises ``TokenInvalid`` when the provider reports the device
    token as unregistered or malformed; every other failure is returned as
    ``PushResult(ok=False)``.
    """

    name = "unknown"

    def send(self, *, token: str, title: str, body: str, data: dict | None = None) -> PushResult:
        raise NotImplementedError

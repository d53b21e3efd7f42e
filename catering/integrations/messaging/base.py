from __future__ import annotations

from dataclasses import dataclass


@dataclass
class MessageResult:
    ok: bool
    code: str = ""
    message: str = ""
    raw: dict | None = None


class MessagingProvider:
    """Kakao alimtalk delivery keyed by a registered template code."""

    name = "unknown"

    def send_templated(self, *, phone: str, template_code: str, variables: dict) -> MessageResult:
        raise NotImplementedError

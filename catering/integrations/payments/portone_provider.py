from __future__ import annotations

import os

import requests

from catering.integrations.payments.base import PaymentCancelResult, PaymentsProvider, PaymentVerifyResult


PORTONE_BASE = "https://api.iamport.kr"


class PortOnePaymentsProvider(PaymentsProvider):
    name = "portone"

    def __init__(self, *, api_key: str, api_secret: str, timeout: int = 10):
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout

    def _access_token(self) -> str:
        r = requests.post(
            f"{PORTONE_BASE}/users/getToken",
            json={"imp_key": self.api_key, "imp_secret": self.api_secret},
            timeout=self.timeout,
        )
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300 or int(j.get("code", -1)) != 0:
            msg = (j.get("message") or f"HTTP {r.status_code}") if isinstance(j, dict) else f"HTTP {r.status_code}"
            raise RuntimeError(f"PORTONE_TOKEN_FAILED:{msg}")
        return str((j.get("response") or {}).get("access_token") or "")

    def verify(self, payment_id: str) -> PaymentVerifyResult:
        pid = (payment_id or "").strip()
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        r = requests.get(f"{PORTONE_BASE}/payments/{pid}", headers=headers, timeout=self.timeout)
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300 or int(j.get("code", -1)) != 0:
            msg = (j.get("message") or f"HTTP {r.status_code}") if isinstance(j, dict) else f"HTTP {r.status_code}"
            raise RuntimeError(f"PORTONE_VERIFY_FAILED:{msg}")
        data = j.get("response") or {}
        try:
            amount = int(data.get("amount") or 0)
        except Exception:
            amount = 0
        return PaymentVerifyResult(
            payment_id=str(data.get("imp_uid") or pid),
            status=str(data.get("status") or "").strip().lower(),
            amount=amount,
            method=str(data.get("pay_method") or ""),
            merchant_uid=str(data.get("merchant_uid") or ""),
            raw=data if isinstance(data, dict) else {},
        )

    def cancel(self, payment_id: str, *, reason: str = "", amount: int | None = None) -> PaymentCancelResult:
        pid = (payment_id or "").strip()
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        body = {"imp_uid": pid, "reason": reason or "고객 요청에 의한 취소"}
        if amount is not None:
            body["amount"] = int(amount)
        r = requests.post(f"{PORTONE_BASE}/payments/cancel", headers=headers, json=body, timeout=self.timeout)
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300 or int(j.get("code", -1)) != 0:
            msg = (j.get("message") or f"HTTP {r.status_code}") if isinstance(j, dict) else f"HTTP {r.status_code}"
            raise RuntimeError(f"PORTONE_CANCEL_FAILED:{msg}")
        data = j.get("response") or {}
        return PaymentCancelResult(
            payment_id=str(data.get("imp_uid") or pid),
            status=str(data.get("status") or "cancelled").strip().lower(),
            cancelled_amount=int(data.get("cancel_amount") or 0),
            raw=data if isinstance(data, dict) else {},
        )


def portone_health() -> dict:
    missing = []
    if not (os.getenv("PORTONE_API_KEY") or "").strip():
        missing.append("PORTONE_API_KEY")
    if not (os.getenv("PORTONE_API_SECRET") or "").strip():
        missing.append("PORTONE_API_SECRET")
    return {"missing": missing}

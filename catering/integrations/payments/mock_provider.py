from __future__ import annotations

from catering.integrations.payments.base import PaymentCancelResult, PaymentsProvider, PaymentVerifyResult


class MockPaymentsProvider(PaymentsProvider):
    """Deterministic gateway for sandbox runs.

    Ids starting with ``fail`` verify as ``failed``; every other id is
    reported paid for the amount registered through ``register`` (0 when
    unknown).
    """

    name = "mock"

    def __init__(self):
        self.amounts: dict[str, int] = {}
        self.cancelled: list[str] = []

    def register(self, payment_id: str, amount: int, method: str = "card") -> None:
        self.amounts[payment_id] = int(amount)

    def verify(self, payment_id: str) -> PaymentVerifyResult:
        pid = (payment_id or "").strip()
        status = "failed" if pid.startswith("fail") else "paid"
        return PaymentVerifyResult(
            payment_id=pid,
            status=status,
            amount=int(self.amounts.get(pid, 0)),
            method="card",
            merchant_uid=f"mock-{pid}",
            raw={"provider": self.name},
        )

    def cancel(self, payment_id: str, *, reason: str = "", amount: int | None = None) -> PaymentCancelResult:
        pid = (payment_id or "").strip()
        self.cancelled.append(pid)
        cancelled = int(amount) if amount is not None else int(self.amounts.get(pid, 0))
        return PaymentCancelResult(payment_id=pid, status="cancelled", cancelled_amount=cancelled, raw={"reason": reason})

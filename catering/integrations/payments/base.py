from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PaymentVerifyResult:
    payment_id: str
    status: str
    amount: int
    method: str = ""
    merchant_uid: str = ""
    raw: dict = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return (self.status or "").strip().lower() == "paid"

    def to_record(self) -> dict:
        """Payment entry as stored on the order (gateway fields plus normalized status)."""
        record = dict(self.raw or {})
        record.update(
            {
                "imp_uid": self.payment_id,
                "merchant_uid": self.merchant_uid,
                "amount": int(self.amount),
                "pay_method": self.method,
                "status": (self.status or "").strip().lower(),
            }
        )
        return record


@dataclass
class PaymentCancelResult:
    payment_id: str
    status: str
    cancelled_amount: int
    raw: dict = field(default_factory=dict)


class PaymentsProvider:
    name = "unknown"

    def verify(self, payment_id: str) -> PaymentVerifyResult:
        raise NotImplementedError

    def cancel(self, payment_id: str, *, reason: str = "", amount: int | None = None) -> PaymentCancelResult:
        raise NotImplementedError

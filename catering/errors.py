from __future__ import annotations


class OrderNotFound(LookupError):
    def __init__(self, order_id: str):
        super().__init__(f"order_not_found {order_id}")
        self.order_id = order_id


class PaymentUnverified(RuntimeError):
    def __init__(self, payment_id: str, reason: str = ""):
        super().__init__(f"payment_unverified {payment_id} {reason}".strip())
        self.payment_id = payment_id
        self.reason = reason


class InvalidStateTransition(ValueError):
    def __init__(self, current: str, target: str):
        super().__init__(f"invalid_order_transition {current}->{target}")
        self.current = current
        self.target = target


class ExternalServiceTimeout(RuntimeError):
    def __init__(self, service: str, detail: str = ""):
        super().__init__(f"external_timeout {service} {detail}".strip())
        self.service = service


class TokenInvalid(RuntimeError):
    """Push token rejected as unregistered/invalid by the push provider."""


class InvalidOrderDocument(ValueError):
    def __init__(self, order_id: str, field: str, detail: str = ""):
        super().__init__(f"invalid_order_document {order_id} field={field} {detail}".strip())
        self.order_id = order_id
        self.field = field

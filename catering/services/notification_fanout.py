"""Turns order events into per-channel Celery jobs.

Enqueue failures are logged and dropped: a notification problem never undoes
the state change that triggered it.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from catering.extensions import db
from catering.models import User
from catering.services.order_store import OrderSnapshot
from catering.utils.observability import get_request_id

ORDER_CONFIRM_REMINDER = "ORDER_CONFIRM_REMINDER"
ORDER_AUTO_CONFIRMED = "ORDER_AUTO_CONFIRMED"
ORDER_CANCELLED = "ORDER_CANCELLED"

PARTNER_ORDER_TEMPLATE = "UD_0958"
PARTNER_ADDITIONAL_ORDER_TEMPLATE = "UD_3133"
CUSTOMER_ORDER_TEMPLATE = "UD_3466"
CUSTOMER_ADDITIONAL_ORDER_TEMPLATE = "UD_3467"


@dataclass
class PushJob:
    user_id: str
    order_id: str
    title: str
    body: str
    data: dict = field(default_factory=dict)
    template: str = ""


@dataclass
class AlimtalkJob:
    phone: str
    template_code: str
    variables: dict
    order_id: str
    user_id: str = ""


def _order_variables(order: OrderSnapshot) -> dict:
    return {
        "storeName": order.store_name,
        "orderNumber": order.order_number or order.id,
        "productName": order.product_name,
    }


def _buyer_phone(order: OrderSnapshot) -> str:
    if order.phone:
        return order.phone
    user = db.session.get(User, order.uid) if order.uid else None
    return (user.phone or "") if user else ""


def build_event_jobs(order: OrderSnapshot, event: str) -> tuple[PushJob | None, AlimtalkJob | None]:
    store = order.store_name
    number = order.order_number or order.id
    if event == ORDER_CONFIRM_REMINDER:
        title = "구매확정을 해주세요!"
        body = f"{store}에서 주문하신 상품이 배송완료 되었습니다. 구매확정을 눌러주세요."
    elif event == ORDER_AUTO_CONFIRMED:
        title = "구매가 자동 확정되었습니다"
        body = f"{store}에서 주문하신 상품이 자동으로 구매확정 되었습니다."
    elif event == ORDER_CANCELLED:
        title = "주문이 취소되었습니다"
        body = f"{store} 주문({number})이 취소되었습니다."
    else:
        raise ValueError(f"unknown_order_event {event}")

    push = None
    if order.uid:
        push = PushJob(
            user_id=order.uid,
            order_id=order.id,
            title=title,
            body=body,
            data={"type": event, "orderId": order.id, "orderNumber": number},
            template=event,
        )
    alimtalk = None
    phone = _buyer_phone(order)
    if phone:
        alimtalk = AlimtalkJob(
            phone=phone,
            template_code=event,
            variables=_order_variables(order),
            order_id=order.id,
            user_id=order.uid,
        )
    return push, alimtalk


def _enqueue_push(job: PushJob) -> bool:
    try:
        from catering.tasks.notification_tasks import send_push_notification

        send_push_notification.delay(
            user_id=job.user_id,
            order_id=job.order_id,
            title=job.title,
            body=job.body,
            data=job.data,
            template=job.template,
            trace_id=get_request_id(),
        )
        return True
    except Exception:
        current_app.logger.exception("push_enqueue_failed order_id=%s template=%s", job.order_id, job.template)
        return False


def _enqueue_alimtalk(job: AlimtalkJob) -> bool:
    try:
        from catering.tasks.notification_tasks import send_alimtalk_notification

        send_alimtalk_notification.delay(
            phone=job.phone,
            template_code=job.template_code,
            variables=job.variables,
            order_id=job.order_id,
            user_id=job.user_id,
            trace_id=get_request_id(),
        )
        return True
    except Exception:
        current_app.logger.exception(
            "alimtalk_enqueue_failed order_id=%s template=%s", job.order_id, job.template_code
        )
        return False


def dispatch_order_event(order: OrderSnapshot, event: str) -> int:
    """Enqueue push + alimtalk for ``event``; returns how many jobs were queued."""
    push, alimtalk = build_event_jobs(order, event)
    queued = 0
    if push is not None and _enqueue_push(push):
        queued += 1
    if alimtalk is not None and _enqueue_alimtalk(alimtalk):
        queued += 1
    current_app.logger.info("order_event_dispatched order_id=%s event=%s queued=%s", order.id, event, queued)
    return queued


def dispatch_order_placed(order: OrderSnapshot, *, is_additional: bool = False, additional=None) -> int:
    """Order-received alimtalk to the partner and the buyer."""
    variables = {
        "storeName": order.store_name,
        "orderNumber": order.order_number,
        "totalQuantity": str(order.total_quantity),
        "totalProductPrice": f"{order.total_product_price:,}",
        "additionalQuantity": str(int(getattr(additional, "total_quantity", 0) or 0)),
        "additionalProductPrice": f"{int(getattr(additional, 'total_product_price', 0) or 0):,}",
    }
    partner_template = PARTNER_ADDITIONAL_ORDER_TEMPLATE if is_additional else PARTNER_ORDER_TEMPLATE
    customer_template = CUSTOMER_ADDITIONAL_ORDER_TEMPLATE if is_additional else CUSTOMER_ORDER_TEMPLATE

    queued = 0
    if order.partner_phone:
        job = AlimtalkJob(
            phone=order.partner_phone.replace("-", ""),
            template_code=partner_template,
            variables=variables,
            order_id=order.id,
            user_id=order.partner_id,
        )
        queued += int(_enqueue_alimtalk(job))
    customer_phone = _buyer_phone(order)
    if customer_phone:
        job = AlimtalkJob(
            phone=customer_phone.replace("-", ""),
            template_code=customer_template,
            variables=variables,
            order_id=order.id,
            user_id=order.uid,
        )
        queued += int(_enqueue_alimtalk(job))
    return queued

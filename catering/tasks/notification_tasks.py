from __future__ import annotations

import time

from celery import shared_task
from sqlalchemy import update

from catering.errors import TokenInvalid
from catering.extensions import db
from catering.integrations.clients import get_clients
from catering.models import NotificationLog, User
from catering.tasks._logging import retry_countdown, task_log


def _record(*, channel: str, status: str, user_id: str = "", order_id: str = "", template: str = "",
            provider: str = "", provider_ref: str = "", error: str = "") -> None:
    db.session.add(
        NotificationLog(
            user_id=user_id or None,
            order_id=order_id or None,
            channel=channel,
            template=(template or "")[:64] or None,
            status=status,
            provider=provider or None,
            provider_ref=(provider_ref or "")[:160] or None,
            error=(error or "")[:1000] or None,
        )
    )
    db.session.commit()


def _clear_push_token(user_id: str, token: str) -> None:
    # Only clear the token that was rejected; a newer registration must survive.
    db.session.execute(
        update(User)
        .where(User.id == user_id, User.fcm_token == token)
        .values(fcm_token=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


@shared_task(
    bind=True,
    name="catering.tasks.notification_tasks.send_push_notification",
    max_retries=5,
)
def send_push_notification(
    self,
    *,
    user_id: str,
    order_id: str = "",
    title: str,
    body: str,
    data: dict | None = None,
    template: str = "",
    trace_id: str = "",
):
    started = time.perf_counter()
    provider = get_clients().push
    if provider is None:
        _record(channel="push", status="skipped", user_id=user_id, order_id=order_id, template=template, error="push_disabled")
        task_log("send_push_notification", status="skipped", started_at=started, trace_id=trace_id, order_id=order_id, reason="push_disabled")
        return {"ok": False, "detail": "push_disabled"}

    user = db.session.get(User, user_id)
    token = (user.fcm_token or "").strip() if user else ""
    if not token:
        _record(channel="push", status="skipped", user_id=user_id, order_id=order_id, template=template, provider=provider.name, error="no_token")
        task_log("send_push_notification", status="skipped", started_at=started, trace_id=trace_id, order_id=order_id, reason="no_token")
        return {"ok": False, "detail": "no_token"}

    try:
        result = provider.send(token=token, title=title, body=body, data=data or {})
    except TokenInvalid as exc:
        _clear_push_token(user_id, token)
        _record(channel="push", status="failed", user_id=user_id, order_id=order_id, template=template, provider=provider.name, error=f"token_invalid {exc}")
        task_log("send_push_notification", status="token_cleared", started_at=started, trace_id=trace_id, order_id=order_id, user_id=user_id)
        return {"ok": False, "detail": "token_invalid"}
    except Exception as exc:
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = retry_countdown(int(self.request.retries or 0))
            task_log("send_push_notification", status="retrying", started_at=started, trace_id=trace_id, order_id=order_id, detail=str(exc), countdown=countdown)
            raise self.retry(exc=exc, countdown=countdown)
        _record(channel="push", status="failed", user_id=user_id, order_id=order_id, template=template, provider=provider.name, error=str(exc))
        task_log("send_push_notification", status="failed", started_at=started, trace_id=trace_id, order_id=order_id, detail=str(exc))
        return {"ok": False, "detail": str(exc)}

    if result.ok:
        _record(channel="push", status="sent", user_id=user_id, order_id=order_id, template=template, provider=provider.name, provider_ref=result.message_id)
        task_log("send_push_notification", status="ok", started_at=started, trace_id=trace_id, order_id=order_id, template=template)
        return {"ok": True, "detail": result.message_id or "sent"}

    if int(self.request.retries or 0) < int(self.max_retries or 0):
        countdown = retry_countdown(int(self.request.retries or 0))
        task_log("send_push_notification", status="retrying", started_at=started, trace_id=trace_id, order_id=order_id, detail=result.code, countdown=countdown)
        raise self.retry(exc=RuntimeError(result.code or "push_send_failed"), countdown=countdown)
    _record(channel="push", status="failed", user_id=user_id, order_id=order_id, template=template, provider=provider.name, error=f"{result.code} {result.message}")
    task_log("send_push_notification", status="failed", started_at=started, trace_id=trace_id, order_id=order_id, detail=result.code)
    return {"ok": False, "detail": result.code}


@shared_task(
    bind=True,
    name="catering.tasks.notification_tasks.send_alimtalk_notification",
    max_retries=5,
)
def send_alimtalk_notification(
    self,
    *,
    phone: str,
    template_code: str,
    variables: dict | None = None,
    order_id: str = "",
    user_id: str = "",
    trace_id: str = "",
):
    started = time.perf_counter()
    provider = get_clients().messaging
    if provider is None:
        _record(channel="alimtalk", status="skipped", user_id=user_id, order_id=order_id, template=template_code, error="alimtalk_disabled")
        task_log("send_alimtalk_notification", status="skipped", started_at=started, trace_id=trace_id, order_id=order_id, reason="alimtalk_disabled")
        return {"ok": False, "detail": "alimtalk_disabled"}
    if not (phone or "").strip():
        _record(channel="alimtalk", status="skipped", user_id=user_id, order_id=order_id, template=template_code, provider=provider.name, error="no_phone")
        return {"ok": False, "detail": "no_phone"}

    try:
        result = provider.send_templated(phone=phone, template_code=template_code, variables=variables or {})
    except Exception as exc:
        result = None
        detail = str(exc)
    else:
        detail = "" if result.ok else f"{result.code} {result.message}".strip()

    if result is not None and result.ok:
        _record(channel="alimtalk", status="sent", user_id=user_id, order_id=order_id, template=template_code, provider=provider.name)
        task_log("send_alimtalk_notification", status="ok", started_at=started, trace_id=trace_id, order_id=order_id, template=template_code)
        return {"ok": True, "detail": "sent"}

    if int(self.request.retries or 0) < int(self.max_retries or 0):
        countdown = retry_countdown(int(self.request.retries or 0))
        task_log("send_alimtalk_notification", status="retrying", started_at=started, trace_id=trace_id, order_id=order_id, detail=detail, countdown=countdown)
        raise self.retry(exc=RuntimeError(detail or "alimtalk_send_failed"), countdown=countdown)
    _record(channel="alimtalk", status="failed", user_id=user_id, order_id=order_id, template=template_code, provider=provider.name, error=detail)
    task_log("send_alimtalk_notification", status="failed", started_at=started, trace_id=trace_id, order_id=order_id, detail=detail)
    return {"ok": False, "detail": detail}

from __future__ import annotations

import time
from datetime import datetime, timedelta

import requests
from celery import shared_task
from sqlalchemy import and_, or_, update

from catering.extensions import db
from catering.integrations.clients import get_clients
from catering.models import ScheduledTask
from catering.tasks._logging import retry_countdown, task_log
from catering.utils.settings import _env_int

# Client errors that are worth another attempt; every other 4xx is final.
_RETRYABLE_4XX = {408, 409, 425, 429}

# A "delivering" row older than this is treated as abandoned by a dead worker.
CLAIM_LEASE = timedelta(minutes=10)


def _finish(row: ScheduledTask, status: str, error: str = "") -> None:
    row.status = status
    row.last_error = (error or "")[:1000] or None
    row.claimed_at = None
    db.session.commit()


def _claim(task_name: str, now: datetime) -> bool:
    """Move the row to ``delivering`` unless another worker holds a live claim."""
    res = db.session.execute(
        update(ScheduledTask)
        .where(
            ScheduledTask.name == task_name,
            or_(
                ScheduledTask.status == "scheduled",
                and_(ScheduledTask.status == "delivering", ScheduledTask.claimed_at < now - CLAIM_LEASE),
            ),
        )
        .values(status="delivering", claimed_at=now, attempts=ScheduledTask.attempts + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.expire_all()
    return bool(res.rowcount)


@shared_task(
    bind=True,
    name="catering.tasks.scheduled_callbacks.deliver_scheduled_callback",
    max_retries=8,
)
def deliver_scheduled_callback(self, *, task_name: str, trace_id: str = ""):
    started = time.perf_counter()
    if not _claim(task_name, datetime.utcnow()):
        row = ScheduledTask.query.filter_by(name=task_name).first()
        reason = "missing" if row is None else row.status
        task_log("deliver_scheduled_callback", status="skipped", started_at=started, trace_id=trace_id, task=task_name, reason=reason)
        return {"ok": False, "detail": reason}
    row = ScheduledTask.query.filter_by(name=task_name).first()

    settings = get_clients().settings
    headers = {"Content-Type": "application/json", "X-Task-Name": task_name}
    if settings.task_callback_secret:
        headers["X-Task-Secret"] = settings.task_callback_secret

    detail = ""
    try:
        r = requests.post(row.target_url, json=row.payload(), headers=headers, timeout=settings.http_timeout_seconds)
    except requests.RequestException as exc:
        detail = f"request_error {exc}"
    else:
        if 200 <= r.status_code < 300:
            _finish(row, "delivered")
            task_log("deliver_scheduled_callback", status="ok", started_at=started, trace_id=trace_id, task=task_name, order_id=row.order_id)
            return {"ok": True, "detail": "delivered"}
        detail = f"http_{r.status_code}"
        if 400 <= r.status_code < 500 and r.status_code not in _RETRYABLE_4XX:
            _finish(row, "failed", detail)
            task_log("deliver_scheduled_callback", status="failed", started_at=started, trace_id=trace_id, task=task_name, order_id=row.order_id, detail=detail)
            return {"ok": False, "detail": detail}

    if int(self.request.retries or 0) < int(self.max_retries or 0):
        countdown = retry_countdown(int(self.request.retries or 0))
        # Released so the retry (or the sweep) can claim it again.
        row.status = "scheduled"
        row.claimed_at = None
        row.last_error = detail[:1000]
        db.session.commit()
        task_log("deliver_scheduled_callback", status="retrying", started_at=started, trace_id=trace_id, task=task_name, order_id=row.order_id, detail=detail, countdown=countdown)
        raise self.retry(exc=RuntimeError(detail), countdown=countdown)
    _finish(row, "failed", detail)
    task_log("deliver_scheduled_callback", status="failed", started_at=started, trace_id=trace_id, task=task_name, order_id=row.order_id, detail=detail)
    return {"ok": False, "detail": detail}


def _sweep_grace() -> timedelta:
    return timedelta(seconds=_env_int("CALLBACK_SWEEP_GRACE_SECONDS", 1800, minimum=0, maximum=86400))


@shared_task(name="catering.tasks.scheduled_callbacks.sweep_overdue_callbacks")
def sweep_overdue_callbacks(limit: int = 200, trace_id: str = ""):
    """Re-enqueue callbacks whose queued message never ran.

    Covers broker messages lost to a restart or a visibility timeout shorter
    than the ETA, and rows left ``delivering`` by a worker that died mid-POST.
    The claim in ``deliver_scheduled_callback`` keeps a duplicate from posting twice.
    """
    started = time.perf_counter()
    now = datetime.utcnow()
    rows = (
        ScheduledTask.query.filter(
            or_(
                and_(ScheduledTask.status == "scheduled", ScheduledTask.schedule_time <= now - _sweep_grace()),
                and_(ScheduledTask.status == "delivering", ScheduledTask.claimed_at < now - CLAIM_LEASE),
            )
        )
        .order_by(ScheduledTask.schedule_time.asc())
        .limit(max(1, int(limit)))
        .all()
    )
    names = [row.name for row in rows]
    for name in names:
        deliver_scheduled_callback.delay(task_name=name, trace_id=trace_id)
    task_log("sweep_overdue_callbacks", status="ok", started_at=started, trace_id=trace_id, enqueued=len(names))
    return {"ok": True, "enqueued": names}

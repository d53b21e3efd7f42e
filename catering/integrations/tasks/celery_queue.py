from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from celery import current_app as current_celery_app
from sqlalchemy.exc import IntegrityError

from catering.errors import ExternalServiceTimeout
from catering.extensions import db
from catering.integrations.tasks.base import TaskQueue, TaskRegistration
from catering.models import ScheduledTask

logger = logging.getLogger(__name__)

FINISHED_STATUSES = {"delivered", "cancelled", "failed"}


def _to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CeleryTaskQueue(TaskQueue):
    """Persists each callback as a ``ScheduledTask`` row and enqueues a Celery
    delivery task with ``eta`` and ``task_id`` set to the task name."""

    name = "celery"

    def create_task(
        self,
        *,
        name: str,
        purpose: str,
        order_id: str,
        target_url: str,
        payload: dict,
        schedule_time: datetime,
    ) -> TaskRegistration:
        from catering.tasks.scheduled_callbacks import deliver_scheduled_callback

        existing = ScheduledTask.query.filter_by(name=name).first()
        if existing is not None:
            logger.info("scheduled_task_exists name=%s status=%s", name, existing.status)
            return TaskRegistration(task_id=name, created=False)

        row = ScheduledTask(
            name=name,
            purpose=purpose,
            order_id=order_id,
            target_url=target_url,
            payload_json=json.dumps(payload or {}),
            schedule_time=_to_utc_naive(schedule_time),
            status="scheduled",
            provider=self.name,
        )
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info("scheduled_task_exists name=%s (concurrent insert)", name)
            return TaskRegistration(task_id=name, created=False)

        eta = schedule_time if schedule_time.tzinfo is not None else schedule_time.replace(tzinfo=timezone.utc)
        try:
            deliver_scheduled_callback.apply_async(kwargs={"task_name": name}, eta=eta, task_id=name)
        except Exception as exc:
            # Nothing was enqueued; drop the row so the same name can be registered again.
            db.session.delete(row)
            db.session.commit()
            raise ExternalServiceTimeout("task_queue", str(exc)[:200]) from exc
        return TaskRegistration(task_id=name, created=True)

    def delete_task(self, task_id: str) -> bool:
        row = ScheduledTask.query.filter_by(name=task_id).first()
        if row is None:
            logger.info("scheduled_task_missing_on_delete name=%s", task_id)
            return True
        if row.status in FINISHED_STATUSES:
            return True
        row.status = "cancelled"
        db.session.commit()
        try:
            current_celery_app.control.revoke(task_id)
        except Exception:
            # The delivery task re-reads the row and skips cancelled tasks.
            logger.warning("scheduled_task_revoke_failed name=%s", task_id, exc_info=True)
        return True

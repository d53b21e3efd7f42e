from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from catering.integrations.clients import get_clients
from catering.integrations.tasks.base import TaskQueue
from catering.integrations.tasks.local_queue import LOCAL_TASK_PREFIX

logger = logging.getLogger(__name__)

PARCEL = "parcel"
PARCEL_REMINDER_DELAY = timedelta(hours=24)
DEFAULT_REMINDER_DELAY = timedelta(hours=1)
AUTO_COMPLETE_GRACE = timedelta(days=3)
END_OF_DAY = time(23, 59, 59)

REMINDER_PATH = "/api/orders/send-confirmation-reminder"
AUTO_COMPLETE_PATH = "/api/orders/auto-complete"


@dataclass(frozen=True)
class CompletionSchedule:
    reminder_at: datetime
    auto_complete_at: datetime
    reminder_name: str
    auto_complete_name: str


@dataclass(frozen=True)
class ScheduledPair:
    reminder_task_id: str
    auto_complete_task_id: str
    reminder_at: datetime | None = None
    auto_complete_at: datetime | None = None


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "Asia/Seoul")
    except ZoneInfoNotFoundError:
        logger.warning("unknown_service_timezone tz=%s falling_back=UTC", tz_name)
        return ZoneInfo("UTC")


def _parse_delivery_date(value: str) -> date:
    raw = (value or "").strip()[:10]
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"invalid_delivery_date {value!r}")


def _parse_delivery_time(value: str | None) -> time:
    raw = (value or "").strip()
    if not raw:
        return END_OF_DAY
    try:
        hours, minutes = raw.split(":")[:2]
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValueError(f"invalid_delivery_time {value!r}")


def compute_schedule(
    order_id: str,
    delivery_method: str,
    delivery_date: str,
    delivery_time: str | None = None,
    now: datetime | None = None,
    tz_name: str = "Asia/Seoul",
) -> CompletionSchedule:
    """Reminder fires a fixed delay after ``now``; auto-complete fires three
    days after the delivery slot (end of the delivery day when no time is set)
    in the service timezone.

    Task names carry the delivery-slot epoch, so the same order and delivery
    slot always map to the same names.
    """
    zone = _zone(tz_name)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    delay = PARCEL_REMINDER_DELAY if (delivery_method or "").strip().lower() == PARCEL else DEFAULT_REMINDER_DELAY
    reminder_at = current + delay

    slot = datetime.combine(_parse_delivery_date(delivery_date), _parse_delivery_time(delivery_time), tzinfo=zone)
    auto_complete_at = slot + AUTO_COMPLETE_GRACE
    epoch = int(slot.timestamp())

    return CompletionSchedule(
        reminder_at=reminder_at,
        auto_complete_at=auto_complete_at,
        reminder_name=f"order-notification-{order_id}-{epoch}",
        auto_complete_name=f"order-autocomplete-{order_id}-{epoch}",
    )


def _resolve(queue: TaskQueue | None, settings):
    if queue is not None and settings is not None:
        return queue, settings
    clients = get_clients()
    return queue or clients.task_queue, settings or clients.settings


def schedule_completion_tasks(
    order_id: str,
    delivery_method: str,
    delivery_date: str,
    delivery_time: str | None = None,
    now: datetime | None = None,
    *,
    queue: TaskQueue | None = None,
    settings=None,
) -> ScheduledPair:
    queue, settings = _resolve(queue, settings)
    base_url = (getattr(settings, "api_base_url", "") or "").rstrip("/")
    schedule = compute_schedule(
        order_id,
        delivery_method,
        delivery_date,
        delivery_time,
        now=now,
        tz_name=getattr(settings, "service_timezone", "Asia/Seoul"),
    )
    payload = {"orderId": order_id}

    reminder = queue.create_task(
        name=schedule.reminder_name,
        purpose="notification",
        order_id=order_id,
        target_url=f"{base_url}{REMINDER_PATH}",
        payload=payload,
        schedule_time=schedule.reminder_at,
    )
    try:
        auto_complete = queue.create_task(
            name=schedule.auto_complete_name,
            purpose="autocomplete",
            order_id=order_id,
            target_url=f"{base_url}{AUTO_COMPLETE_PATH}",
            payload=payload,
            schedule_time=schedule.auto_complete_at,
        )
    except Exception:
        if reminder.created:
            try:
                cancel_task(reminder.task_id, queue=queue)
            except Exception:
                logger.exception("reminder_rollback_failed order_id=%s task_id=%s", order_id, reminder.task_id)
        raise

    logger.info(
        json.dumps(
            {
                "event": "completion_tasks_scheduled",
                "order_id": order_id,
                "queue": queue.name,
                "reminder_task_id": reminder.task_id,
                "reminder_at": schedule.reminder_at.isoformat(),
                "auto_complete_task_id": auto_complete.task_id,
                "auto_complete_at": schedule.auto_complete_at.isoformat(),
                "reregistered": not (reminder.created and auto_complete.created),
            }
        )
    )
    return ScheduledPair(
        reminder_task_id=reminder.task_id,
        auto_complete_task_id=auto_complete.task_id,
        reminder_at=schedule.reminder_at,
        auto_complete_at=schedule.auto_complete_at,
    )


def cancel_task(task_id: str | None, *, queue: TaskQueue | None = None) -> bool:
    if not task_id:
        return True
    if task_id.startswith(LOCAL_TASK_PREFIX):
        logger.info("task_cancel_skipped_local task_id=%s", task_id)
        return True
    if queue is None:
        queue = get_clients().task_queue
    return bool(queue.delete_task(task_id))


def cancel_completion_tasks(order_id: str, task_ids: list[str | None], *, queue: TaskQueue | None = None) -> None:
    for task_id in task_ids:
        try:
            cancel_task(task_id, queue=queue)
        except Exception:
            logger.exception("task_cancel_failed order_id=%s task_id=%s", order_id, task_id)

from __future__ import annotations

import json
import os
from datetime import datetime

from celery import Celery
from celery.signals import task_failure, task_retry
from flask import has_app_context

from catering.utils.settings import _env_bool, _env_int


_SIGNALS_BOUND = False

TASK_MODULES = [
    "catering.tasks.notification_tasks",
    "catering.tasks.scheduled_callbacks",
]


def _broker_url() -> str:
    return (
        (os.getenv("CELERY_BROKER_URL") or "").strip()
        or (os.getenv("REDIS_URL") or "").strip()
        or "redis://localhost:6379/0"
    )


def _result_backend(broker_url: str) -> str:
    return (
        (os.getenv("CELERY_RESULT_BACKEND") or "").strip()
        or (os.getenv("REDIS_URL") or "").strip()
        or broker_url
    )


def _visibility_timeout_seconds() -> int:
    # Must outlast the longest ETA (auto-complete runs days after delivery) or Redis redelivers early.
    return _env_int("CELERY_VISIBILITY_TIMEOUT_SECONDS", 45 * 86400, minimum=3600, maximum=365 * 86400)


def _callback_sweep_interval_seconds() -> int:
    return _env_int("CALLBACK_SWEEP_INTERVAL_SECONDS", 300, minimum=30, maximum=86400)


def _bind_task_observers(flask_app) -> None:
    global _SIGNALS_BOUND
    if _SIGNALS_BOUND:
        return

    @task_failure.connect(weak=False)
    def _on_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **extra):
        payload = {
            "event": "celery_task_failure",
            "task_name": getattr(sender, "name", "") if sender is not None else "",
            "task_id": str(task_id or ""),
            "trace_id": str((kwargs or {}).get("trace_id") or ""),
            "exception": str(exception or ""),
            "timestamp": datetime.utcnow().isoformat(),
        }
        flask_app.logger.error(json.dumps(payload))

    @task_retry.connect(weak=False)
    def _on_task_retry(request=None, reason=None, einfo=None, **extra):
        payload = {
            "event": "celery_task_retry",
            "task_name": str(getattr(request, "task", "") or ""),
            "task_id": str(getattr(request, "id", "") or ""),
            "trace_id": str((getattr(request, "kwargs", None) or {}).get("trace_id") or ""),
            "reason": str(reason or ""),
            "retry_count": int(getattr(request, "retries", 0) or 0),
            "timestamp": datetime.utcnow().isoformat(),
        }
        flask_app.logger.warning(json.dumps(payload))

    _SIGNALS_BOUND = True


def create_celery_app(flask_app) -> Celery:
    broker = _broker_url()
    backend = _result_backend(broker)
    celery = Celery(flask_app.import_name, broker=broker, backend=backend, include=TASK_MODULES)
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        task_always_eager=_env_bool("CELERY_TASK_ALWAYS_EAGER"),
        task_eager_propagates=False,
        task_store_eager_result=False,
        broker_transport_options={"visibility_timeout": _visibility_timeout_seconds()},
        result_backend_transport_options={"visibility_timeout": _visibility_timeout_seconds()},
        beat_schedule={
            "overdue-callback-sweep": {
                "task": "catering.tasks.scheduled_callbacks.sweep_overdue_callbacks",
                "schedule": float(_callback_sweep_interval_seconds()),
            }
        },
    )

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            # Eager tasks run inside the caller's context and must share its session.
            if has_app_context():
                return self.run(*args, **kwargs)
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    celery.set_default()
    _bind_task_observers(flask_app)
    flask_app.extensions["celery"] = celery
    return celery

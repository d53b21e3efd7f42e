from __future__ import annotations

import logging

from catering.integrations.common import IntegrationMisconfiguredError, integration_mode
from catering.integrations.tasks.base import TaskQueue
from catering.integrations.tasks.celery_queue import CeleryTaskQueue
from catering.integrations.tasks.local_queue import LocalTaskQueue

logger = logging.getLogger(__name__)


def build_task_queue(settings) -> TaskQueue:
    mode = integration_mode(settings)
    provider = (getattr(settings, "task_queue_provider", "celery") or "celery").strip().lower()
    if provider == "local" or mode == "disabled":
        if mode == "live":
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:local task queue in live mode")
        logger.info("task_queue_local_fallback mode=%s provider=%s", mode, provider)
        return LocalTaskQueue()
    if provider != "celery":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:task_queue_provider={provider}")
    return CeleryTaskQueue()

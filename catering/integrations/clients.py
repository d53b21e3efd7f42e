from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from catering.integrations.common import IntegrationDisabledError
from catering.integrations.messaging.base import MessagingProvider
from catering.integrations.messaging.factory import build_messaging_provider
from catering.integrations.payments.base import PaymentsProvider
from catering.integrations.payments.factory import build_payments_provider
from catering.integrations.push.base import PushProvider
from catering.integrations.push.factory import build_push_provider
from catering.integrations.tasks.base import TaskQueue
from catering.integrations.tasks.factory import build_task_queue
from catering.utils.settings import IntegrationSettings

logger = logging.getLogger(__name__)

EXTENSION_KEY = "catering"


@dataclass
class IntegrationClients:
    settings: IntegrationSettings
    task_queue: TaskQueue
    push: PushProvider | None = None
    messaging: MessagingProvider | None = None
    payments: PaymentsProvider | None = None


def _optional(builder, settings, channel: str):
    try:
        return builder(settings)
    except IntegrationDisabledError:
        logger.info("integration_disabled channel=%s", channel)
        return None


def build_clients(settings: IntegrationSettings) -> IntegrationClients:
    return IntegrationClients(
        settings=settings,
        task_queue=build_task_queue(settings),
        push=_optional(build_push_provider, settings, "push"),
        messaging=_optional(build_messaging_provider, settings, "alimtalk"),
        payments=_optional(build_payments_provider, settings, "payments"),
    )


def get_clients() -> IntegrationClients:
    return current_app.extensions[EXTENSION_KEY]

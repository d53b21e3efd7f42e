from __future__ import annotations

import os

from catering.integrations.common import (
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
    http_timeout,
    integration_mode,
)
from catering.integrations.push.base import PushProvider
from catering.integrations.push.fcm_provider import FcmPushProvider, fcm_health
from catering.integrations.push.mock_provider import MockPushProvider


def build_push_provider(settings) -> PushProvider:
    mode = integration_mode(settings)
    provider = (getattr(settings, "push_provider", "mock") or "mock").strip().lower()
    if mode == "disabled" or provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:push")

    if provider == "mock":
        if mode == "live":
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:mock push in live mode")
        return MockPushProvider()
    if provider != "fcm":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:push_provider={provider}")

    missing = fcm_health().get("missing", [])
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return FcmPushProvider(
        project_id=(os.getenv("FCM_PROJECT_ID") or "").strip(),
        access_token=(os.getenv("FCM_ACCESS_TOKEN") or "").strip(),
        timeout=http_timeout(settings),
    )

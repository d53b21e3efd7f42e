from __future__ import annotations

import os

from catering.integrations.common import (
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
    http_timeout,
    integration_mode,
)
from catering.integrations.messaging.aligo_provider import AligoMessagingProvider, aligo_health
from catering.integrations.messaging.base import MessagingProvider
from catering.integrations.messaging.mock_provider import MockMessagingProvider


def build_messaging_provider(settings) -> MessagingProvider:
    mode = integration_mode(settings)
    provider = (getattr(settings, "messaging_provider", "mock") or "mock").strip().lower()
    if mode == "disabled" or provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:alimtalk")

    if provider == "mock":
        if mode == "live":
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:mock messaging in live mode")
        return MockMessagingProvider()
    if provider != "aligo":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:messaging_provider={provider}")

    missing = aligo_health().get("missing", [])
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return AligoMessagingProvider(
        api_key=(os.getenv("ALIGO_API_KEY") or "").strip(),
        user_id=(os.getenv("ALIGO_USER_ID") or "").strip(),
        sender_key=(os.getenv("ALIGO_SENDER_KEY") or "").strip(),
        sender=(os.getenv("ALIGO_SENDER") or "").strip(),
        timeout=http_timeout(settings),
    )


def messaging_health(settings) -> dict:
    mode = integration_mode(settings)
    provider = (getattr(settings, "messaging_provider", "mock") or "mock").strip().lower()
    missing = aligo_health().get("missing", []) if provider == "aligo" else []
    if mode == "disabled" or provider == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {"status": status, "mode": mode, "provider": provider, "missing": missing}

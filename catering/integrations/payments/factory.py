from __future__ import annotations

import os

from catering.integrations.common import (
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
    http_timeout,
    integration_mode,
)
from catering.integrations.payments.base import PaymentsProvider
from catering.integrations.payments.mock_provider import MockPaymentsProvider
from catering.integrations.payments.portone_provider import PortOnePaymentsProvider, portone_health


def build_payments_provider(settings) -> PaymentsProvider:
    mode = integration_mode(settings)
    provider = (getattr(settings, "payments_provider", "mock") or "mock").strip().lower()
    if mode == "disabled" or provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        if mode == "live":
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:mock payments in live mode")
        return MockPaymentsProvider()
    if provider != "portone":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    missing = portone_health().get("missing", [])
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return PortOnePaymentsProvider(
        api_key=(os.getenv("PORTONE_API_KEY") or "").strip(),
        api_secret=(os.getenv("PORTONE_API_SECRET") or "").strip(),
        timeout=http_timeout(settings),
    )

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


@dataclass
class IntegrationSettings:
    integrations_mode: str = "sandbox"  # disabled | sandbox | live
    push_provider: str = "mock"  # mock | fcm
    messaging_provider: str = "mock"  # mock | aligo
    payments_provider: str = "mock"  # mock | portone
    task_queue_provider: str = "celery"  # celery | local
    api_base_url: str = "http://localhost:5000"
    service_timezone: str = "Asia/Seoul"
    task_callback_secret: str = ""
    http_timeout_seconds: int = 10


def load_settings() -> IntegrationSettings:
    return IntegrationSettings(
        integrations_mode=_env_str("INTEGRATIONS_MODE", "sandbox").lower(),
        push_provider=_env_str("PUSH_PROVIDER", "mock").lower(),
        messaging_provider=_env_str("MESSAGING_PROVIDER", "mock").lower(),
        payments_provider=_env_str("PAYMENTS_PROVIDER", "mock").lower(),
        task_queue_provider=_env_str("TASK_QUEUE_PROVIDER", "celery").lower(),
        api_base_url=_env_str("API_BASE_URL", "http://localhost:5000").rstrip("/"),
        service_timezone=_env_str("SERVICE_TIMEZONE", "Asia/Seoul"),
        task_callback_secret=_env_str("TASK_CALLBACK_SECRET"),
        http_timeout_seconds=_env_int("INTEGRATION_HTTP_TIMEOUT_SECONDS", 10, minimum=1, maximum=120),
    )

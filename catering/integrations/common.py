from __future__ import annotations


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


def integration_mode(settings) -> str:
    return (getattr(settings, "integrations_mode", "disabled") or "disabled").strip().lower()


def http_timeout(settings, default: int = 10) -> int:
    try:
        return max(1, int(getattr(settings, "http_timeout_seconds", default) or default))
    except Exception:
        return default

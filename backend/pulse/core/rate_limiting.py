"""
Shared slowapi limiter.

main.py registers this instance as app.state.limiter; the batch router
decorates its triggers with the stricter batch limit. Settings are read on
first use, so a configuration error surfaces from startup rather than here.

    @router.post("/batch/alerts")
    @limiter.limit(get_batch_rate_limit)
    async def trigger_alerts(request: Request, response: Response): ...
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from pydantic import ValidationError


def _limit(requests_field: str, window_field: str, fallback: str) -> str:
    from pulse.core.config import get_settings
    try:
        settings = get_settings()
    except ValidationError:
        return fallback
    return f"{getattr(settings, requests_field)}/{getattr(settings, window_field)}"


def _enabled() -> bool:
    from pulse.core.config import get_settings
    try:
        return get_settings().rate_limit_enabled
    except ValidationError:
        return True


def get_default_rate_limit() -> str:
    return _limit("rate_limit_requests", "rate_limit_window", "100/minute")


def get_batch_rate_limit() -> str:
    """Limit for the manual batch triggers, evaluated per request."""
    return _limit("rate_limit_batch_requests", "rate_limit_batch_window", "5/minute")


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_default_rate_limit],
    enabled=_enabled(),
    headers_enabled=True,
)

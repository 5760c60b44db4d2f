"""
Rate Limiting Configuration

Per-route limits for the public tracking endpoints and the admin API.

Design Decisions:
- Uses slowapi (lightweight, FastAPI-compatible)
- IP-based limiting; the tracker has no user identity to key on
- Keyed on the same client IP the tracker records, so visitors behind a
  trusted proxy do not share one bucket
- Can be switched off through RATE_LIMIT_ENABLED (tests, trusted deployments)
"""

from slowapi import Limiter
from starlette.requests import Request

from visitor_tracker.core.setting import settings
from visitor_tracker.core.validators import get_client_ip


def client_ip_key(request: Request) -> str:
    return get_client_ip(request, settings.TRUST_PROXY_HEADERS)


limiter = Limiter(key_func=client_ip_key, enabled=settings.RATE_LIMIT_ENABLED)

# Format: "count/period" (e.g., "10/minute" means 10 requests per minute)
RATE_LIMITS = {
    "track": "60/minute",  # Page loads per IP
    "update_location": "20/minute",  # Client location submissions per IP
    "debug": "10/minute",
    "admin_api": "120/minute",
}

"""Per-client throttling for the public ingestion endpoints (slowapi)."""

import ipaddress

from slowapi import Limiter
from starlette.requests import Request

from audience.core.config import settings

# Client IP is checked in this order. The first parseable address wins.
_PROXY_HEADERS = ("CF-Connecting-IP", "X-Real-IP", "X-Forwarded-For")
_FALLBACK_IP = "127.0.0.1"


def _parse_ip(raw: str | None) -> str | None:
    if not raw:
        return None
    candidate = raw.split(",")[0].strip()
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def get_client_ip(request: Request) -> str:
    """Best-effort visitor IP behind Cloudflare or a reverse proxy.

    Header values that do not parse as an address are skipped, so junk in
    a forwarded header cannot mint a fresh fingerprint per request.
    """
    for header in _PROXY_HEADERS:
        ip = _parse_ip(request.headers.get(header))
        if ip:
            return ip
    if request.client and request.client.host:
        return _parse_ip(request.client.host) or request.client.host
    return _FALLBACK_IP


def ingestion_rate_limit() -> str:
    """Limit string for click, visit and identify, read per request."""
    return settings.click_rate_limit


limiter = Limiter(key_func=get_client_ip)

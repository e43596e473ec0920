"""Visitor fingerprinting and user-agent heuristics.

Fingerprints are a cheap deduplication key for anonymous engagement
analytics, not a security identity.
"""

import hashlib
import re

from audience.models.audience_member import DeviceType

FINGERPRINT_PREFIX = "fp_"
BOT_FILTERED_FINGERPRINT = "bot-filtered"

_BOT_PATTERN = re.compile(
    r"bot|crawl|spider|slurp|headless|facebookexternalhit|preview|curl|wget|python-requests",
    re.IGNORECASE,
)


def create_fingerprint(ip_address: str | None, user_agent: str | None) -> str:
    """Derive a stable pseudonymous key from request signals.

    Missing signals degrade the key's quality but never fail.
    """
    ip = (ip_address or "").strip()
    ua = (user_agent or "").strip()
    digest = hashlib.sha256(f"{ip}|{ua}".encode()).hexdigest()
    return f"{FINGERPRINT_PREFIX}{digest[:32]}"


def infer_device_type(user_agent: str | None) -> DeviceType:
    """Classify a user agent into a coarse device type."""
    if not user_agent:
        return DeviceType.UNKNOWN
    ua = user_agent.lower()
    if "ipad" in ua or "tablet" in ua:
        return DeviceType.TABLET
    if "mobi" in ua or "iphone" in ua or "android" in ua:
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


def is_bot_user_agent(user_agent: str | None) -> bool:
    """Heuristic bot detection. An empty user agent counts as a bot."""
    if not user_agent or not user_agent.strip():
        return True
    return bool(_BOT_PATTERN.search(user_agent))


def should_block_bot(user_agent: str | None, block_patterns: list[str]) -> bool:
    """True when the agent matches a signature we refuse to record at all."""
    if not user_agent:
        return False
    ua = user_agent.lower()
    return any(pattern.lower() in ua for pattern in block_patterns)

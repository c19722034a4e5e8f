"""Client key derivation for rate-limit counters."""

from __future__ import annotations

import re

from starlette.requests import HTTPConnection

DEFAULT_MOBILE_BUCKETS = 10_000

_MOBILE_UA = re.compile(r"Mobile|Android|iPhone|iPad|iPod", re.IGNORECASE)


def client_ip(request: HTTPConnection, trust_proxy: bool = True) -> str:
    """Return the caller's IP, honouring a single-hop X-Forwarded-For."""
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def user_agent_bucket(user_agent: str, buckets: int = DEFAULT_MOBILE_BUCKETS) -> int:
    """Fold a User-Agent string into one of ``buckets`` slots.

    Shift-and-subtract accumulator over UTF-16 code units, wrapped to a
    signed 32-bit integer. Not collision resistant; only spreads devices
    behind one carrier NAT address across separate counters.
    """
    acc = 0
    data = user_agent.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(data), 2):
        code = data[i] | (data[i + 1] << 8)
        acc = ((acc << 5) - acc + code) & 0xFFFFFFFF
    if acc & 0x80000000:
        acc -= 1 << 32
    return abs(acc) % buckets


def is_mobile_user_agent(user_agent: str) -> bool:
    return bool(_MOBILE_UA.search(user_agent))


def key_for(ip: str, user_agent: str, buckets: int = DEFAULT_MOBILE_BUCKETS) -> str:
    """Counter key for an address and agent: ``<ip>`` or ``<ip>-mobile-<bucket>``."""
    if user_agent and is_mobile_user_agent(user_agent):
        return f"{ip}-mobile-{user_agent_bucket(user_agent, buckets)}"
    return ip


def client_key(
    request: HTTPConnection,
    trust_proxy: bool = True,
    buckets: int = DEFAULT_MOBILE_BUCKETS,
) -> str:
    return key_for(
        client_ip(request, trust_proxy=trust_proxy),
        request.headers.get("user-agent", ""),
        buckets,
    )

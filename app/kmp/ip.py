"""
Client IP resolution behind Cloudflare / nginx / load balancers.
"""
from __future__ import annotations

import ipaddress
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Request

_LOCALHOST = ("127.0.0.1", "::1")


def normalize_ip(raw: str | None) -> str | None:
    """
    Return a cleaned IP string, "localhost" for loopback, or None when `raw` is not an address.
    IPv4 `host:port` has its port stripped; IPv6 is left alone.
    """
    if not raw:
        return None
    value = raw.strip()
    if not value:
        return None
    if value.count(":") == 1 and "." in value:
        value = value.split(":", 1)[0]
    if value.startswith("[") and "]" in value:
        value = value[1 : value.index("]")]
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return None
    if value in _LOCALHOST:
        return "localhost"
    return value


def client_ip(req: "Request") -> str:
    """CF-Connecting-IP, then X-Real-IP, then the first X-Forwarded-For hop, then the socket address."""
    candidates = [
        req.headers.get("CF-Connecting-IP"),
        req.headers.get("X-Real-IP"),
    ]
    forwarded = req.headers.get("X-Forwarded-For")
    if forwarded:
        candidates.append(forwarded.split(",")[0])
    candidates.append(req.remote_addr)

    for raw in candidates:
        ip = normalize_ip(raw)
        if ip:
            return ip
    return "unknown"

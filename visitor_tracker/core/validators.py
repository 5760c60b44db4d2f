"""
Input Validators and Sanitizers

Helpers for the request metadata the tracker records: client IP extraction
and normalization, and the length limits applied to free-form headers.
"""

import ipaddress
from typing import Optional

from starlette.requests import HTTPConnection

UNKNOWN_IP = "Unknown"

MAX_USER_AGENT_LENGTH = 500
MAX_REFERRER_LENGTH = 1000


def normalize_ip(raw_ip: Optional[str]) -> str:
    """
    Normalize an IP address string.

    Strips whitespace and the IPv4-mapped IPv6 prefix ("::ffff:1.2.3.4"
    becomes "1.2.3.4"). Values that are not IP addresses are returned
    trimmed so they can still be stored; empty input becomes "Unknown".
    """
    if not raw_ip:
        return UNKNOWN_IP

    ip = raw_ip.strip()
    if not ip:
        return UNKNOWN_IP

    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return ip

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return str(address.ipv4_mapped)
    return str(address)


def is_public_ip(ip: str) -> bool:
    """
    Check whether an IP can be geolocated by a public provider.

    Loopback, private, link-local, multicast, reserved and unspecified
    addresses are rejected, as is anything that does not parse.
    """
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False

    return address.is_global and not address.is_multicast


def get_client_ip(connection: HTTPConnection, trust_proxy_headers: bool = True) -> str:
    """
    Extract client IP address from a request or WebSocket.

    Handles proxies and load balancers by checking X-Forwarded-For header.
    """
    if trust_proxy_headers:
        forwarded_for = connection.headers.get("X-Forwarded-For")
        if forwarded_for:
            # X-Forwarded-For can contain multiple IPs, take the first one
            return normalize_ip(forwarded_for.split(",")[0])

    return normalize_ip(connection.client.host if connection.client else None)


def truncate(value: Optional[str], max_length: int) -> str:
    """Clip a header value to the column size it is stored in."""
    if not value:
        return ""
    return value[:max_length]

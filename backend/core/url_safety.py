"""Outbound URL checks for user-authored HTTP actions.

Automation authors type arbitrary URLs into http_request nodes, so the
engine refuses schemes other than http(s), loopback/private addresses and
the ports of our own infrastructure.
"""

import ipaddress
from urllib.parse import urlparse

from core.exceptions import UnsafeURLError

FORBIDDEN_PORTS = frozenset({5432, 6379, 5555})  # postgres, redis, flower
LOCALHOST_NAMES = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})


def _is_private_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return ip.is_private or ip.is_loopback or ip.is_reserved or ip.is_link_local


def validate_url_safety(url: str, block_private_networks: bool = True) -> None:
    """Raise UnsafeURLError if ``url`` must not be called.

    Hostnames are not resolved; only literal IPs are checked against
    private ranges.
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise UnsafeURLError(f"Invalid URL: {e}")

    if parsed.scheme.lower() not in ("http", "https"):
        raise UnsafeURLError(
            f"Unsupported scheme: {parsed.scheme or '(none)'}. Only HTTP and HTTPS allowed."
        )

    hostname = parsed.hostname
    if not hostname:
        raise UnsafeURLError("URL must have a valid hostname")

    if not block_private_networks:
        return

    if hostname.lower() in LOCALHOST_NAMES:
        raise UnsafeURLError("Connections to localhost are not allowed")
    if _is_private_ip(hostname):
        raise UnsafeURLError(f"Connections to private IP {hostname} are not allowed")

    try:
        port = parsed.port
    except ValueError:
        raise UnsafeURLError("URL has an invalid port")
    if port in FORBIDDEN_PORTS:
        raise UnsafeURLError(f"Connections to internal port {port} are not allowed")

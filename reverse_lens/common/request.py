# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Client address extraction for rate limiting.

The address comes from untrusted headers, so every candidate is parsed with
``ipaddress`` before it is used as part of a store key.
"""
import ipaddress
from typing import Mapping, Optional

LOCALHOST_IP = "127.0.0.1"


def sanitize_ip(value: Optional[str]) -> Optional[str]:
    """Return a validated IP address string, or None if ``value`` is not one.

    IPv4 ``addr:port`` loses the port. Bracketed IPv6 (``[addr]`` or
    ``[addr]:port``) yields the inner address. Bare IPv6 is returned as given.

    Args:
        value (str | None): Raw header value.

    Returns:
        str | None: The address, or None when it does not parse.
    """
    if not value or not value.strip():
        return None
    candidate = value.strip()

    if candidate.startswith("["):
        inner, sep, _rest = candidate[1:].partition("]")
        if not sep:
            return None
        try:
            ipaddress.IPv6Address(inner)
        except ValueError:
            return None
        return inner

    if candidate.count(":") == 1:
        candidate = candidate.split(":", 1)[0]
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


def get_client_ip(
    headers: Mapping[str, str],
    trusted_header: str = "cf-connecting-ip",
) -> str:
    """Extract the client address from request headers.

    Priority: the edge-injected ``trusted_header``, then the first
    ``X-Forwarded-For`` entry, then ``127.0.0.1``.

    Args:
        headers (Mapping[str, str]): Request headers; lookup is case-insensitive.
        trusted_header (str): Header set by the edge proxy.

    Returns:
        str: A validated client address.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    trusted = sanitize_ip(lowered.get(trusted_header.lower()))
    if trusted:
        return trusted

    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        first = sanitize_ip(forwarded.split(",")[0])
        if first:
            return first

    return LOCALHOST_IP

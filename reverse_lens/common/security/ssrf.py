# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
SSRF (Server-Side Request Forgery) protection for client-supplied image URLs.

Every URL goes through percent-decoding normalization, absolute-URL parsing,
scheme and credential checks, and a host blocklist covering local names,
cloud metadata endpoints, and private/reserved IPv4 and IPv6 literals.
Callers must use the returned canonical URL, never the raw input.

String inspection cannot catch a public name that resolves to a private
address. ``validate_url_async`` optionally resolves the host and checks every
answer when ``SSRF_RESOLVE_DNS`` is enabled.
"""
import asyncio
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from reverse_lens.common.errors import (
    BlockedHostError,
    CredentialsNotAllowedError,
    InvalidUrlError,
    UnsupportedSchemeError,
)
from reverse_lens.config import settings

logger = logging.getLogger(__name__)

_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "local"})
_LOCAL_HOSTNAME_SUFFIXES = (".local", ".localhost", ".internal", ".localdomain")

_METADATA_HOSTNAMES = frozenset({
    "metadata",
    "metadata.google.internal",
    "metadata.goog",
    "instance-data",
    "instance-data.ec2.internal",
    "169.254.169.254",
    "169.254.170.2",
    "100.100.100.200",
    "fd00:ec2::254",
})

_BLOCKED_IPV4_NETWORKS = tuple(
    ipaddress.IPv4Network(net)
    for net in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.0.0.0/24",
        "192.168.0.0/16",
        "198.18.0.0/15",
        "224.0.0.0/3",
    )
)

_BLOCKED_IPV6_NETWORKS = tuple(
    ipaddress.IPv6Network(net)
    for net in (
        "::/128",
        "::1/128",
        "fe80::/10",
        "fc00::/7",
        "2001:db8::/32",
    )
)

_PERCENT_SEQUENCE = re.compile(r"%[0-9A-Fa-f]{2}")
# Dotted, hex and octal IPv4 spellings accepted by inet_aton ("127.1", "0x7f.0.0.1", "2130706433").
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]*|\d+)(\.(0x[0-9a-f]*|\d+)){0,3}$")
_HOSTNAME_CHARS = re.compile(r"^[a-z0-9_.-]+$")
_URL_SAFE = "/?:@!$&'()*+,;=~%"


@dataclass(frozen=True)
class UrlPolicy:
    """Immutable host policy handed to ``UrlValidator``.

    Attributes:
        allowed_hosts (frozenset[str]): Hostnames admitted when the allow-list
            is enforced. Stored lower-cased without a trailing dot.
        enforce_allowlist (bool): When True, every host outside
            ``allowed_hosts`` is blocked, including when the set is empty.
    """

    allowed_hosts: frozenset[str] = field(default_factory=frozenset)
    enforce_allowlist: bool = False

    def __post_init__(self) -> None:
        normalized = frozenset(h.lower().rstrip(".") for h in self.allowed_hosts)
        object.__setattr__(self, "allowed_hosts", normalized)

    @classmethod
    def from_hosts(cls, hosts: Iterable[str], enforce: bool) -> "UrlPolicy":
        """Build a policy from any iterable of hostnames."""
        return cls(allowed_hosts=frozenset(hosts), enforce_allowlist=enforce)


def _coerce_ipv4(host: str) -> Optional[str]:
    """Return the dotted-quad form of a numeric IPv4 host, or None for names.

    Raises:
        ValueError: If the host is numeric but not a valid address.
    """
    if not _NUMERIC_HOST.match(host):
        return None
    try:
        packed = socket.inet_aton(host)
    except OSError:
        raise ValueError(f"Malformed numeric host: {host}")
    return socket.inet_ntoa(packed)


def _is_blocked_ipv4(addr: ipaddress.IPv4Address) -> bool:
    return any(addr in net for net in _BLOCKED_IPV4_NETWORKS)


def _is_blocked_ipv6(addr: ipaddress.IPv6Address) -> bool:
    if addr.ipv4_mapped is not None:
        return _is_blocked_ipv4(addr.ipv4_mapped)
    return any(addr in net for net in _BLOCKED_IPV6_NETWORKS)


def _is_blocked_ip(ip_str: str) -> bool:
    """Check an IP literal against the blocked ranges. Unparseable -> blocked."""
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    if isinstance(addr, ipaddress.IPv4Address):
        return _is_blocked_ipv4(addr)
    return _is_blocked_ipv6(addr)


def is_blocked_hostname(hostname: str, policy: Optional[UrlPolicy] = None) -> bool:
    """Decide whether a hostname or IP literal must not be fetched.

    Args:
        hostname (str): Host as parsed from a URL; IPv6 may be bracketed.
        policy (UrlPolicy | None): Allow-list policy; None applies no allow-list.

    Returns:
        bool: True if the host is blocked.
    """
    normalized = hostname.lower().rstrip(".")
    if normalized.startswith("[") and normalized.endswith("]"):
        normalized = normalized[1:-1]
    if not normalized:
        return True

    if policy is not None and policy.enforce_allowlist and normalized not in policy.allowed_hosts:
        return True

    if normalized in _LOCAL_HOSTNAMES or normalized.endswith(_LOCAL_HOSTNAME_SUFFIXES):
        return True

    if (
        normalized in _METADATA_HOSTNAMES
        or normalized.startswith("metadata.")
        or normalized.endswith(".metadata")
    ):
        return True

    if ":" in normalized:
        return _is_blocked_ip(normalized)

    try:
        ipv4 = _coerce_ipv4(normalized)
    except ValueError:
        return True
    if ipv4 is not None:
        return _is_blocked_ip(ipv4)

    return False


def _normalize_encoding(raw: str) -> str:
    """Percent-decode once, and a second time only if that changes the string.

    Returns:
        str: The normalized text, or the input unchanged if it does not
            decode as UTF-8.
    """
    try:
        decoded = unquote(raw, errors="strict")
        if _PERCENT_SEQUENCE.search(decoded):
            twice = unquote(decoded, errors="strict")
            if twice != decoded:
                decoded = twice
    except UnicodeDecodeError:
        return raw
    return decoded


def _canonical_host(hostname: str) -> str:
    """IDNA-encode and sanity-check a hostname; IPv4 spellings become dotted-quad.

    Raises:
        InvalidUrlError: If the host cannot be represented.
    """
    host = hostname.lower()
    if ":" in host:
        try:
            return f"[{ipaddress.IPv6Address(host).compressed}]"
        except ValueError:
            # Not a valid literal; the blocklist treats it as blocked.
            return f"[{host}]"

    if not host.isascii():
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError:
            raise InvalidUrlError("Invalid image URL: malformed hostname")

    try:
        ipv4 = _coerce_ipv4(host.rstrip("."))
    except ValueError:
        raise InvalidUrlError("Invalid image URL: malformed numeric host")
    if ipv4 is not None:
        return ipv4

    if not _HOSTNAME_CHARS.match(host):
        raise InvalidUrlError("Invalid image URL: malformed hostname")
    return host


class UrlValidator:
    """Admit or reject untrusted image URLs before anything fetches them."""

    def __init__(self, policy: Optional[UrlPolicy] = None) -> None:
        """Initialize the validator.

        Args:
            policy (UrlPolicy | None): Host policy; defaults to no allow-list.
        """
        self._policy = policy or UrlPolicy()

    @property
    def policy(self) -> UrlPolicy:
        return self._policy

    def validate(self, raw_url: str) -> str:
        """Validate a URL and return its canonical form.

        Scheme, credential and host decisions are made on the percent-decoded
        URL. The returned path, query and fragment keep the caller's encoding,
        so an encoded ``#``, ``?``, ``&``, ``=`` or ``/`` stays data.

        Args:
            raw_url (str): Untrusted URL string.

        Returns:
            str: The canonical URL. Use this, not ``raw_url``, for any fetch.

        Raises:
            InvalidUrlError: If the URL cannot be parsed, has no host, or its
                encoded authority decodes to a different host.
            UnsupportedSchemeError: If the scheme is not https.
            CredentialsNotAllowedError: If the URL embeds userinfo.
            BlockedHostError: If the host is local, private, or reserved.
        """
        if not isinstance(raw_url, str):
            raise InvalidUrlError("Invalid image URL")

        cleaned = re.sub(r"[\t\r\n]", "", raw_url.strip()).replace("\\", "/")
        normalized = _normalize_encoding(cleaned).replace("\\", "/")

        try:
            parts = urlsplit(normalized)
            port = parts.port
            raw_parts = urlsplit(cleaned)
        except ValueError:
            raise InvalidUrlError("Invalid image URL")

        if not parts.scheme or not parts.netloc:
            if parts.scheme and parts.scheme.lower() != "https":
                raise UnsupportedSchemeError(f"Only https image URLs are allowed, got: {parts.scheme}")
            raise InvalidUrlError("Invalid image URL")

        if parts.scheme.lower() != "https":
            raise UnsupportedSchemeError(f"Only https image URLs are allowed, got: {parts.scheme}")

        if parts.username or parts.password or "@" in parts.netloc:
            raise CredentialsNotAllowedError("Image URLs cannot include credentials")

        if not parts.hostname:
            raise InvalidUrlError("Missing hostname in URL")

        host = _canonical_host(parts.hostname)

        if is_blocked_hostname(host, self._policy):
            logger.info("Rejected image URL host: %s", host)
            raise BlockedHostError(f"Blocked host: {host}")

        # Path, query and fragment come from the undecoded split, so its host must match.
        if _normalize_encoding(raw_parts.hostname or "").lower() != parts.hostname:
            raise InvalidUrlError("Invalid image URL: encoded characters in host")

        netloc = host if port in (None, 443) else f"{host}:{port}"
        path = quote(raw_parts.path, safe=_URL_SAFE) or "/"
        query = quote(raw_parts.query, safe=_URL_SAFE)
        fragment = quote(raw_parts.fragment, safe=_URL_SAFE)
        return urlunsplit(("https", netloc, path, query, fragment))


def default_validator() -> UrlValidator:
    """Build a validator from the current settings."""
    return UrlValidator(
        UrlPolicy.from_hosts(settings.SSRF_ALLOWED_HOSTS, settings.SSRF_ENFORCE_ALLOWLIST)
    )


def validate_url(url: str) -> str:
    """Validate a URL with the settings-derived policy (synchronous, no DNS).

    Args:
        url (str): The URL to validate.

    Returns:
        str: The canonical URL.

    Raises:
        SSRFError: If the URL is rejected.
    """
    return default_validator().validate(url)


async def validate_url_async(
    url: str,
    validator: Optional[UrlValidator] = None,
    resolve_dns: Optional[bool] = None,
) -> str:
    """Validate a URL and, if enabled, check every address its host resolves to.

    DNS resolution runs in a thread pool to avoid blocking the event loop.

    Args:
        url (str): The URL to validate.
        validator (UrlValidator | None): Validator to use; defaults to the
            settings-derived one.
        resolve_dns (bool | None): Overrides ``SSRF_RESOLVE_DNS`` when given.

    Returns:
        str: The canonical URL.

    Raises:
        SSRFError: If the URL is rejected, DNS resolution fails, or any
            resolved address is blocked.
    """
    validator = validator or default_validator()
    normalized = validator.validate(url)

    if not (settings.SSRF_RESOLVE_DNS if resolve_dns is None else resolve_dns):
        return normalized

    hostname = urlsplit(normalized).hostname or ""
    try:
        ipaddress.ip_address(hostname)
        return normalized
    except ValueError:
        pass  # Not an IP literal, continue to DNS resolution

    loop = asyncio.get_running_loop()
    try:
        addrinfos = await loop.run_in_executor(
            None,
            lambda: socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM),
        )
    except socket.gaierror:
        raise BlockedHostError(f"DNS resolution failed for: {hostname}")

    if not addrinfos:
        raise BlockedHostError(f"DNS resolution returned no results for: {hostname}")

    for _family, _type, _proto, _canonname, sockaddr in addrinfos:
        ip_str = sockaddr[0]
        if _is_blocked_ip(ip_str):
            logger.info("Host %s resolved to blocked address %s", hostname, ip_str)
            raise BlockedHostError(f"Blocked private/reserved IP: {ip_str}")

    return normalized

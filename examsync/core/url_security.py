"""URL policy for user-supplied iCal links.

Only public HTTPS endpoints are accepted. The check works on the literal URL
(no DNS lookups): IP literals in private, loopback, link-local or shared
address space and local-only host names are rejected.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Optional, Union
from urllib.parse import urlsplit, urlunsplit

from .errors import IcalUrlValidationError

logger = logging.getLogger(__name__)

INVALID_URL_MESSAGE = "Ungültige URL"
HTTPS_ONLY_MESSAGE = "Nur sichere HTTPS-Links sind erlaubt."
PRIVATE_HOST_MESSAGE = "Lokale/private Hostnamen oder IPs sind nicht erlaubt."

LOCAL_HOST_SUFFIXES = (".localhost", ".local", ".internal")

# RFC 6598 carrier-grade NAT range; not covered by ipaddress.is_private on every Python version
_SHARED_ADDRESS_SPACE = ipaddress.ip_network("100.64.0.0/10")
_THIS_NETWORK = ipaddress.ip_network("0.0.0.0/8")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _parse_numeric_ipv4(host: str) -> Optional[ipaddress.IPv4Address]:
    """Parse decimal (2130706433) or hexadecimal (0x7f000001) IPv4 spellings."""
    try:
        if host.isdigit():
            value = int(host)
        elif host.startswith("0x"):
            value = int(host, 16)
        else:
            return None
    except ValueError:
        return None
    if 0 <= value <= 0xFFFFFFFF:
        return ipaddress.IPv4Address(value)
    return None


def _parse_ip_literal(host: str) -> Optional[IPAddress]:
    literal = host.removeprefix("[").removesuffix("]").split("%", 1)[0]
    try:
        return ipaddress.ip_address(literal)
    except ValueError:
        return _parse_numeric_ipv4(literal)


def _is_blocked_address(ip: IPAddress) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if isinstance(ip, ipaddress.IPv4Address) and (
        ip in _SHARED_ADDRESS_SPACE or ip in _THIS_NETWORK
    ):
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_multicast
        or ip.is_reserved
    )


def is_local_or_private_host(host: str) -> bool:
    """Return True if host names a loopback/private/link-local target.

    Examples:
        >>> is_local_or_private_host("192.168.1.10")
        True
        >>> is_local_or_private_host("[fe80::1]")
        True
        >>> is_local_or_private_host("intranet.internal")
        True
        >>> is_local_or_private_host("schulnetz.example.ch")
        False
    """
    normalized = host.strip().rstrip(".").lower()
    if not normalized:
        return True
    if normalized == "localhost" or normalized.endswith(LOCAL_HOST_SUFFIXES):
        return True

    ip = _parse_ip_literal(normalized)
    if ip is None:
        return False
    return _is_blocked_address(ip)


def normalize_and_validate_ical_url(url: str) -> str:
    """Validate a user-supplied iCal link and return its canonical HTTPS form.

    ``webcal://`` links (as handed out by schulNetz) are rewritten to HTTPS.
    The fragment and an explicit :443 are dropped.

    Raises:
        IcalUrlValidationError: scheme, user-info, port or host violate the policy
    """
    raw = (url or "").strip()
    if not raw:
        raise IcalUrlValidationError(INVALID_URL_MESSAGE)

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as e:
        raise IcalUrlValidationError(INVALID_URL_MESSAGE) from e

    scheme = parts.scheme.lower()
    if scheme == "webcal":
        scheme = "https"
    if scheme != "https":
        logger.debug("Rejected non-HTTPS iCal URL scheme %r", parts.scheme)
        raise IcalUrlValidationError(HTTPS_ONLY_MESSAGE)

    if parts.username or parts.password or "@" in parts.netloc:
        raise IcalUrlValidationError(INVALID_URL_MESSAGE)

    host = (parts.hostname or "").lower()
    if not host:
        raise IcalUrlValidationError(INVALID_URL_MESSAGE)
    if port not in (None, 443):
        raise IcalUrlValidationError(INVALID_URL_MESSAGE)
    if is_local_or_private_host(host):
        logger.debug("Rejected local/private iCal host %r", host)
        raise IcalUrlValidationError(PRIVATE_HOST_MESSAGE)

    netloc = f"[{host}]" if ":" in host else host
    path = parts.path or "/"
    return urlunsplit(("https", netloc, path, parts.query, ""))


def normalize_imported_ical_url_or_none(raw: Optional[str]) -> Optional[str]:
    """Like normalize_and_validate_ical_url but returns None instead of raising."""
    if raw is None or not raw.strip():
        return None
    try:
        return normalize_and_validate_ical_url(raw)
    except IcalUrlValidationError:
        return None

"""Exception hierarchy and user-facing error classification for iCal syncs.

Transport and validation failures bubble up to the importer/sync boundary as
one of the exceptions below. The caller (a scheduler or the CLI) turns them into
a German status line with to_sync_error_message() and decides about retries with
should_retry_sync().
"""

from __future__ import annotations

import re
import socket
import ssl
from typing import Optional

_HTTP_STATUS_PATTERN = re.compile(r"HTTP-(\d{3})")
_URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
_TOKEN_PARAM_PATTERN = re.compile(r"([?&](token|auth|key|longurl)=)[^&\s]+", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")

MAX_ERROR_DETAIL_LENGTH = 160
GENERIC_NETWORK_ERROR = "Netzwerkfehler beim iCal-Sync."


class IcalSyncError(Exception):
    """Base exception for everything raised at the sync boundary."""


class IcalUrlValidationError(IcalSyncError, ValueError):
    """The configured iCal URL is malformed or violates the URL policy."""


class IcalFetchError(IcalSyncError):
    """Base exception for ICS download failures."""


class IcalHttpStatusError(IcalFetchError):
    """The server answered with a non-2xx status. Message format: HTTP-<code>."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(message or f"HTTP-{status_code}")
        self.status_code = status_code


class IcalEmptyResponseError(IcalFetchError):
    """The server answered 2xx with an empty body."""

    def __init__(self, message: str = "Leere iCal-Antwort"):
        super().__init__(message)


class IcalHostNotFoundError(IcalFetchError):
    """DNS resolution failed (offline or unknown host)."""


class IcalTimeoutError(IcalFetchError):
    """Connect or read timeout while downloading."""


class IcalConnectionError(IcalFetchError):
    """The TCP connection was refused or dropped."""


class IcalTlsError(IcalFetchError):
    """TLS handshake or certificate verification failed."""


# Builtin OSError subclasses count as well so any text source can raise them
_TRANSIENT_ERRORS = (
    IcalHostNotFoundError,
    IcalTimeoutError,
    IcalConnectionError,
    socket.gaierror,
    TimeoutError,
    ConnectionError,
)


def extract_http_status_code(message: Optional[str]) -> Optional[int]:
    """Return the status code embedded as HTTP-<code> in message, if any."""
    match = _HTTP_STATUS_PATTERN.search(message or "")
    if match is None:
        return None
    return int(match.group(1))


def _status_code_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, IcalHttpStatusError):
        return exc.status_code
    return extract_http_status_code(str(exc))


def sanitize_network_error_details(raw: str) -> str:
    """Strip URLs and secret query values from a transport error message."""
    without_urls = _URL_PATTERN.sub("[URL]", raw)
    without_tokens = _TOKEN_PARAM_PATTERN.sub(r"\1***", without_urls)
    compact = _WHITESPACE_PATTERN.sub(" ", without_tokens).strip()
    return compact[:MAX_ERROR_DETAIL_LENGTH] or GENERIC_NETWORK_ERROR


def to_sync_error_message(exc: BaseException) -> str:
    """Map an exception raised during a sync to a localized status line.

    Examples:
        >>> to_sync_error_message(IcalHttpStatusError(404))
        'iCal-Link nicht gefunden (HTTP 404).'
        >>> to_sync_error_message(IcalTimeoutError("read timed out"))
        'Zeitüberschreitung beim Laden des iCal.'
    """
    if isinstance(exc, IcalUrlValidationError):
        return str(exc) or "Ungültige Eingabe."
    if isinstance(exc, (IcalHostNotFoundError, socket.gaierror)):
        return "Kein Internet oder Host nicht erreichbar."
    if isinstance(exc, (IcalTimeoutError, TimeoutError)):
        return "Zeitüberschreitung beim Laden des iCal."
    if isinstance(exc, (IcalConnectionError, ConnectionError)):
        return "Verbindung zum iCal-Server fehlgeschlagen."
    if isinstance(exc, (IcalTlsError, ssl.SSLError)):
        return "Sichere Verbindung (SSL/TLS) fehlgeschlagen."
    if isinstance(exc, (IcalFetchError, OSError)):
        raw = str(exc)
        status_code = _status_code_of(exc)
        if status_code == 401:
            return "Zugriff verweigert (HTTP 401). Prüfe den iCal-Link."
        if status_code == 403:
            return "Zugriff verweigert (HTTP 403)."
        if status_code == 404:
            return "iCal-Link nicht gefunden (HTTP 404)."
        if status_code == 410:
            return "iCal-Link ist abgelaufen (HTTP 410)."
        if status_code is not None:
            return f"iCal-Serverfehler (HTTP {status_code})."
        if "HTTP-" in raw:
            return "iCal-Serverfehler."
        if not raw.strip():
            return GENERIC_NETWORK_ERROR
        return sanitize_network_error_details(raw)

    message = str(exc).strip()
    return message or "Unbekannter Fehler"


def should_retry_sync(exc: BaseException) -> bool:
    """Decide whether a failed sync is worth retrying later.

    DNS, timeout and connection failures are transient. TLS failures, URL
    validation errors and client-side HTTP statuses (404, 410, ...) are not.
    Server-side statuses (5xx) as well as 408 and 429 are retried.
    """
    if isinstance(exc, (IcalTlsError, ssl.SSLError)):
        return False
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    if isinstance(exc, (IcalFetchError, OSError)):
        status_code = _status_code_of(exc)
        if status_code is None:
            return True
        return status_code in (408, 429) or 500 <= status_code <= 599
    return False

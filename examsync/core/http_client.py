"""HTTP text source for downloading iCal feeds.

The importers only depend on the IcalTextSource protocol (``await fetch(url)``);
HttpIcalTextSource is the production implementation on top of httpx. Transport
failures are translated into the examsync.core.errors hierarchy so callers never
have to know about httpx.
"""

from __future__ import annotations

import logging
import socket
import ssl
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel

from .errors import (
    IcalConnectionError,
    IcalEmptyResponseError,
    IcalFetchError,
    IcalHostNotFoundError,
    IcalHttpStatusError,
    IcalTimeoutError,
    IcalTlsError,
)

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 15.0
READ_TIMEOUT_SECONDS = 20.0

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "ExamSync/1.0",
    "Accept": "text/calendar, text/plain, */*",
}


class IcalTextSource(Protocol):
    """Anything that can turn a (validated) URL into calendar text."""

    async def fetch(self, url: str) -> str:
        """Return the response body; raise IcalFetchError subclasses on failure."""
        ...


class IcalHttpResponse(BaseModel):
    """Result of a conditional download."""

    body: Optional[str] = None
    http_status_code: int
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    not_modified: bool = False


def build_timeout(
    connect_seconds: float = CONNECT_TIMEOUT_SECONDS,
    read_seconds: float = READ_TIMEOUT_SECONDS,
) -> httpx.Timeout:
    """Timeout configuration used for feed downloads."""
    return httpx.Timeout(connect=connect_seconds, read=read_seconds, write=10.0, pool=read_seconds)


def _caused_by(exc: BaseException, kinds: tuple[type[BaseException], ...]) -> bool:
    """Walk the __cause__/__context__ chain looking for one of kinds."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, kinds):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def translate_transport_error(exc: httpx.HTTPError) -> IcalFetchError:
    """Map an httpx exception onto the sync error hierarchy."""
    if isinstance(exc, httpx.TimeoutException):
        return IcalTimeoutError(str(exc) or "timeout")
    if _caused_by(exc, (ssl.SSLError,)):
        return IcalTlsError(str(exc) or "TLS handshake failed")
    if _caused_by(exc, (socket.gaierror,)) or "name or service not known" in str(exc).lower():
        return IcalHostNotFoundError(str(exc) or "host not found")
    if isinstance(exc, (httpx.ConnectError, httpx.RemoteProtocolError, httpx.ReadError)):
        return IcalConnectionError(str(exc) or "connection failed")
    return IcalFetchError(str(exc))


def _clean_header(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class HttpIcalTextSource:
    """Async iCal downloader with redirect following and bounded timeouts."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        read_timeout: float = READ_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the text source.

        Args:
            client: Optional externally owned client (tests pass one with a MockTransport)
            connect_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds
        """
        self._client = client
        self._owns_client = client is None
        self._timeout = build_timeout(connect_timeout, read_timeout)

    async def __aenter__(self) -> HttpIcalTextSource:
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                verify=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed iCal HTTP client")
        if self._owns_client:
            self._client = None

    @staticmethod
    def get_conditional_headers(
        etag: Optional[str] = None, last_modified: Optional[str] = None
    ) -> dict[str, str]:
        """Build If-None-Match / If-Modified-Since headers for a conditional GET."""
        headers: dict[str, str] = {}
        etag = _clean_header(etag)
        last_modified = _clean_header(last_modified)
        if etag:
            headers["If-None-Match"] = etag
        if last_modified:
            headers["If-Modified-Since"] = last_modified
        return headers

    async def download(
        self,
        url: str,
        previous_etag: Optional[str] = None,
        previous_last_modified: Optional[str] = None,
    ) -> IcalHttpResponse:
        """Download url, honouring cache validators from the previous sync.

        Raises:
            IcalHttpStatusError: non-2xx (other than 304) status
            IcalEmptyResponseError: 2xx with a blank body
            IcalFetchError: any transport failure (subclass tells which)
        """
        client = self._ensure_client()
        headers = self.get_conditional_headers(previous_etag, previous_last_modified)

        try:
            response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            translated = translate_transport_error(e)
            logger.warning("iCal download failed: %s", type(translated).__name__)
            raise translated from e

        etag = _clean_header(response.headers.get("etag"))
        last_modified = _clean_header(response.headers.get("last-modified"))

        if response.status_code == 304:
            logger.debug("iCal feed not modified since last sync")
            return IcalHttpResponse(
                body=None,
                http_status_code=304,
                etag=etag or previous_etag,
                last_modified=last_modified or previous_last_modified,
                not_modified=True,
            )

        if not 200 <= response.status_code <= 299:
            logger.warning("iCal download answered HTTP %d", response.status_code)
            raise IcalHttpStatusError(response.status_code)

        body = response.text
        if not body.strip():
            raise IcalEmptyResponseError()

        logger.debug("Downloaded %d characters of iCal data", len(body))
        return IcalHttpResponse(
            body=body,
            http_status_code=response.status_code,
            etag=etag,
            last_modified=last_modified,
        )

    async def fetch(self, url: str) -> str:
        """Unconditional download returning the body text."""
        response = await self.download(url)
        if response.body is None:
            raise IcalEmptyResponseError()
        return response.body

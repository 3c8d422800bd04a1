"""Unit tests for examsync.core.errors."""

import socket
import ssl

import pytest

from examsync.core.errors import (
    GENERIC_NETWORK_ERROR,
    IcalConnectionError,
    IcalEmptyResponseError,
    IcalFetchError,
    IcalHostNotFoundError,
    IcalHttpStatusError,
    IcalTimeoutError,
    IcalTlsError,
    IcalUrlValidationError,
    extract_http_status_code,
    sanitize_network_error_details,
    should_retry_sync,
    to_sync_error_message,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestHttpStatusErrors:
    """Tests for HTTP status classification."""

    def test_http_status_error_when_created_then_message_has_code(self) -> None:
        """Test the HTTP-<code> message format."""
        error = IcalHttpStatusError(404)

        assert str(error) == "HTTP-404"
        assert error.status_code == 404

    @pytest.mark.parametrize(
        ("status", "message", "retry"),
        [
            (401, "Zugriff verweigert (HTTP 401). Prüfe den iCal-Link.", False),
            (403, "Zugriff verweigert (HTTP 403).", False),
            (404, "iCal-Link nicht gefunden (HTTP 404).", False),
            (410, "iCal-Link ist abgelaufen (HTTP 410).", False),
            (400, "iCal-Serverfehler (HTTP 400).", False),
            (408, "iCal-Serverfehler (HTTP 408).", True),
            (429, "iCal-Serverfehler (HTTP 429).", True),
            (500, "iCal-Serverfehler (HTTP 500).", True),
            (503, "iCal-Serverfehler (HTTP 503).", True),
        ],
    )
    def test_status_error_when_classified_then_message_and_retry(
        self, status: int, message: str, retry: bool
    ) -> None:
        """Test each status maps to its status line and retry decision."""
        error = IcalHttpStatusError(status)

        assert to_sync_error_message(error) == message
        assert should_retry_sync(error) is retry

    def test_fetch_error_when_message_embeds_status_then_parsed(self) -> None:
        """Test a plain fetch error carrying HTTP-<code> is classified by that code."""
        error = IcalFetchError("upstream said HTTP-502 bad gateway")

        assert to_sync_error_message(error) == "iCal-Serverfehler (HTTP 502)."
        assert should_retry_sync(error) is True

    def test_extract_http_status_code_when_absent_then_none(self) -> None:
        """Test messages without a code yield None."""
        assert extract_http_status_code("Server said HTTP-503") == 503
        assert extract_http_status_code("no code here") is None
        assert extract_http_status_code(None) is None


class TestTransportErrors:
    """Tests for transport failure classification."""

    @pytest.mark.parametrize(
        ("error", "message", "retry"),
        [
            (IcalHostNotFoundError("dns"), "Kein Internet oder Host nicht erreichbar.", True),
            (IcalTimeoutError("read timed out"), "Zeitüberschreitung beim Laden des iCal.", True),
            (IcalConnectionError("refused"), "Verbindung zum iCal-Server fehlgeschlagen.", True),
            (IcalTlsError("bad cert"), "Sichere Verbindung (SSL/TLS) fehlgeschlagen.", False),
            (IcalEmptyResponseError(), "Leere iCal-Antwort", True),
        ],
    )
    def test_transport_error_when_classified_then_message_and_retry(
        self, error: Exception, message: str, retry: bool
    ) -> None:
        """Test transient failures are retried and TLS failures are not."""
        assert to_sync_error_message(error) == message
        assert should_retry_sync(error) is retry

    def test_fetch_error_when_message_has_url_then_sanitized(self) -> None:
        """Test URLs and secrets never reach the status line."""
        error = IcalFetchError("GET https://schulnetz.example.ch/ical?token=geheim failed")

        assert to_sync_error_message(error) == "GET [URL] failed"

    def test_fetch_error_when_blank_then_generic_message(self) -> None:
        """Test an empty message falls back to the generic network error."""
        assert to_sync_error_message(IcalFetchError("")) == GENERIC_NETWORK_ERROR

    def test_sanitize_network_error_details_when_token_param_then_masked(self) -> None:
        """Test secret query values outside URLs are masked and whitespace collapsed."""
        assert sanitize_network_error_details("bad   request ?token=abc&x=1") == "bad request ?token=***&x=1"

    def test_sanitize_network_error_details_when_long_then_truncated(self) -> None:
        """Test details are capped at 160 characters."""
        assert len(sanitize_network_error_details("x" * 500)) == 160


class TestBuiltinOsErrors:
    """Tests for OSError subclasses raised by text sources other than the httpx one."""

    @pytest.mark.parametrize(
        ("error", "message", "retry"),
        [
            (socket.gaierror("Name or service not known"), "Kein Internet oder Host nicht erreichbar.", True),
            (TimeoutError("timed out"), "Zeitüberschreitung beim Laden des iCal.", True),
            (ConnectionRefusedError("refused"), "Verbindung zum iCal-Server fehlgeschlagen.", True),
            (ConnectionResetError("reset by peer"), "Verbindung zum iCal-Server fehlgeschlagen.", True),
            (ssl.SSLError("handshake failed"), "Sichere Verbindung (SSL/TLS) fehlgeschlagen.", False),
        ],
    )
    def test_builtin_transport_error_when_classified_then_same_as_fetch_error(
        self, error: OSError, message: str, retry: bool
    ) -> None:
        """Test builtin transport errors map to the same status lines as their Ical counterparts."""
        assert to_sync_error_message(error) == message
        assert should_retry_sync(error) is retry

    @pytest.mark.parametrize(
        ("error", "message", "retry"),
        [
            (OSError("HTTP-503"), "iCal-Serverfehler (HTTP 503).", True),
            (OSError("HTTP-404"), "iCal-Link nicht gefunden (HTTP 404).", False),
            (OSError("HTTP-429"), "iCal-Serverfehler (HTTP 429).", True),
            (OSError("Leere iCal-Antwort"), "Leere iCal-Antwort", True),
            (OSError(""), GENERIC_NETWORK_ERROR, True),
        ],
    )
    def test_os_error_when_message_classified_then_by_http_code(
        self, error: OSError, message: str, retry: bool
    ) -> None:
        """Test plain OSErrors are classified by their HTTP-<code> message and retried without one."""
        assert to_sync_error_message(error) == message
        assert should_retry_sync(error) is retry


class TestOtherErrors:
    """Tests for validation and unexpected errors."""

    def test_validation_error_when_classified_then_own_message_no_retry(self) -> None:
        """Test validation errors surface their message and are never retried."""
        error = IcalUrlValidationError("Nur sichere HTTPS-Links sind erlaubt.")

        assert to_sync_error_message(error) == "Nur sichere HTTPS-Links sind erlaubt."
        assert should_retry_sync(error) is False
        assert isinstance(error, ValueError)

    @pytest.mark.parametrize(("error", "message"), [(RuntimeError("kaputt"), "kaputt"), (RuntimeError(), "Unbekannter Fehler")])
    def test_unexpected_error_when_classified_then_message_no_retry(self, error: Exception, message: str) -> None:
        """Test unknown exceptions are shown as-is and not retried."""
        assert to_sync_error_message(error) == message
        assert should_retry_sync(error) is False

"""Unit tests for examsync.calendar.datetime_resolver."""

import datetime

import pytest

from examsync.calendar.datetime_resolver import (
    DAY_MILLIS,
    ParsedDateTime,
    parse_duration_millis,
    resolve_datetime,
)
from tests.ics_builders import ZURICH, millis, zurich

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestResolveDatetime:
    """Tests for DTSTART/DTEND value resolution."""

    def test_resolve_datetime_when_eight_digits_then_date_only_local_midnight(self) -> None:
        """Test a plain date resolves to midnight in the default zone."""
        parsed = resolve_datetime("20250310", default_zone=ZURICH)

        assert parsed == ParsedDateTime(millis(zurich(2025, 3, 10)), True)

    def test_resolve_datetime_when_value_date_param_then_date_only(self) -> None:
        """Test VALUE=DATE is honoured case-insensitively."""
        parsed = resolve_datetime("20250310", value_type="date", default_zone=ZURICH)

        assert parsed is not None
        assert parsed.is_date_only is True

    def test_resolve_datetime_when_utc_suffix_then_reads_as_utc(self) -> None:
        """Test a trailing Z marks a UTC date-time."""
        parsed = resolve_datetime("20250310T070000Z", default_zone=ZURICH)
        expected = datetime.datetime(2025, 3, 10, 7, 0, tzinfo=datetime.UTC)

        assert parsed == ParsedDateTime(millis(expected), False)

    def test_resolve_datetime_when_seconds_missing_then_defaults_to_zero(self) -> None:
        """Test HHMM values without seconds are accepted."""
        parsed = resolve_datetime("20250310T0800Z")
        expected = datetime.datetime(2025, 3, 10, 8, 0, tzinfo=datetime.UTC)

        assert parsed is not None
        assert parsed.epoch_millis == millis(expected)

    def test_resolve_datetime_when_tzid_then_uses_that_zone(self) -> None:
        """Test TZID-qualified local times are converted through the zone."""
        parsed = resolve_datetime("20250310T080000", tzid="Europe/Zurich", default_zone=datetime.UTC)

        assert parsed is not None
        assert parsed.epoch_millis == millis(datetime.datetime(2025, 3, 10, 7, 0, tzinfo=datetime.UTC))

    def test_resolve_datetime_when_windows_tzid_then_maps_to_iana(self) -> None:
        """Test Outlook zone names resolve to their IANA equivalent."""
        parsed = resolve_datetime(
            "20250310T080000", tzid="W. Europe Standard Time", default_zone=datetime.UTC
        )

        assert parsed is not None
        assert parsed.epoch_millis == millis(zurich(2025, 3, 10, 8, 0))

    def test_resolve_datetime_when_unknown_tzid_then_falls_back_to_default_zone(self) -> None:
        """Test an unknown TZID is read in the default zone."""
        parsed = resolve_datetime("20250310T080000", tzid="Mars/Olympus_Mons", default_zone=datetime.UTC)

        assert parsed is not None
        assert parsed.epoch_millis == millis(datetime.datetime(2025, 3, 10, 8, 0, tzinfo=datetime.UTC))

    def test_resolve_datetime_when_floating_then_uses_default_zone(self) -> None:
        """Test values without TZID or Z are floating times."""
        parsed = resolve_datetime("20250310T080000", default_zone=ZURICH)

        assert parsed is not None
        assert parsed.epoch_millis == millis(zurich(2025, 3, 10, 8, 0))

    @pytest.mark.parametrize("value", ["2025-03-10", "garbage", "20251340", "", "20250310T25"])
    def test_resolve_datetime_when_unparseable_then_returns_none(self, value: str) -> None:
        """Test invalid values yield None instead of raising."""
        assert resolve_datetime(value, default_zone=ZURICH) is None

    def test_parsed_datetime_plus_millis_when_flag_given_then_overrides(self) -> None:
        """Test plus_millis shifts the instant and optionally replaces the flag."""
        parsed = ParsedDateTime(1_000, True)

        assert parsed.plus_millis(DAY_MILLIS) == ParsedDateTime(1_000 + DAY_MILLIS, True)
        assert parsed.plus_millis(5, is_date_only=False) == ParsedDateTime(1_005, False)


class TestParseDurationMillis:
    """Tests for DURATION parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("PT45M", 45 * 60 * 1000),
            ("PT1H30M", 90 * 60 * 1000),
            ("P1D", DAY_MILLIS),
            ("P1W", 7 * DAY_MILLIS),
            ("-PT5M", -5 * 60 * 1000),
        ],
    )
    def test_parse_duration_millis_when_valid_then_returns_millis(self, value: str, expected: int) -> None:
        """Test RFC 5545 durations are converted to milliseconds."""
        assert parse_duration_millis(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "bogus"])
    def test_parse_duration_millis_when_invalid_then_returns_none(self, value: str) -> None:
        """Test blank or invalid durations yield None."""
        assert parse_duration_millis(value) is None

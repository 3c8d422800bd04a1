"""Time zone resolution and clock helpers for examsync."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache

logger = logging.getLogger(__name__)

# School feeds are published for Swiss schools; local times without TZID are read in this zone.
DEFAULT_SCHOOL_TIMEZONE = "Europe/Zurich"

TEST_TIME_ENV_VAR = "EXAMSYNC_TEST_TIME"

# Windows zone names seen in Outlook/Exchange exports of school calendars
WINDOWS_TZ_MAP: dict[str, str] = {
    "W. Europe Standard Time": "Europe/Zurich",
    "Central Europe Standard Time": "Europe/Budapest",
    "Central European Standard Time": "Europe/Warsaw",
    "Romance Standard Time": "Europe/Paris",
    "GMT Standard Time": "Europe/London",
    "E. Europe Standard Time": "Europe/Bucharest",
    "FLE Standard Time": "Europe/Helsinki",
    "GTB Standard Time": "Europe/Athens",
    "UTC": "UTC",
}

# Obsolete or colloquial names mapped to canonical IANA identifiers
TZ_ALIAS_MAP: dict[str, str] = {
    "GMT": "UTC",
    "Etc/UTC": "UTC",
    "Etc/GMT": "UTC",
    "Universal": "UTC",
    "Zulu": "UTC",
    "CET": "Europe/Zurich",
    "MET": "Europe/Zurich",
    "Europe/Busingen": "Europe/Zurich",
    "Switzerland": "Europe/Zurich",
}


def now_utc() -> datetime.datetime:
    """Return the current UTC time as an aware datetime.

    Can be overridden for testing via the EXAMSYNC_TEST_TIME environment variable
    (ISO 8601, e.g. "2025-03-10T07:30:00+01:00"). Naive values are read as UTC.
    """
    test_time = os.environ.get(TEST_TIME_ENV_VAR)
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.UTC)
            return dt.replace(tzinfo=datetime.UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV_VAR, test_time, e)

    return datetime.datetime.now(datetime.UTC)


_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC)


def to_epoch_millis(dt: datetime.datetime) -> int:
    """Convert an aware datetime into integer epoch milliseconds."""
    return (dt - _EPOCH) // datetime.timedelta(milliseconds=1)


def now_epoch_millis() -> int:
    """Return now_utc() as epoch milliseconds."""
    return to_epoch_millis(now_utc())


def normalize_timezone_name(tz_str: str | None) -> str | None:
    """Normalize a TZID value to a canonical IANA identifier.

    Windows names and aliases are mapped first, then the result is validated
    with zoneinfo. Returns None when the zone cannot be resolved.

    Examples:
        >>> normalize_timezone_name("W. Europe Standard Time")
        'Europe/Zurich'
        >>> normalize_timezone_name("Europe/Zurich")
        'Europe/Zurich'
        >>> normalize_timezone_name("Mars/Olympus_Mons") is None
        True
    """
    if not tz_str or not tz_str.strip():
        return None

    # TZID values are sometimes quoted: TZID="Europe/Zurich"
    name = tz_str.strip().strip('"')
    candidate = WINDOWS_TZ_MAP.get(name) or TZ_ALIAS_MAP.get(name, name)
    try:
        zoneinfo.ZoneInfo(candidate)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone %r", tz_str)
        return None
    return candidate


@lru_cache(maxsize=64)
def _zone_for(name: str) -> zoneinfo.ZoneInfo:
    return zoneinfo.ZoneInfo(name)


def get_zone(name: str | None = None) -> zoneinfo.ZoneInfo:
    """Return the ZoneInfo for name, falling back to DEFAULT_SCHOOL_TIMEZONE."""
    resolved = normalize_timezone_name(name) if name else None
    return _zone_for(resolved or DEFAULT_SCHOOL_TIMEZONE)


def resolve_zone(tzid: str | None, default_zone: datetime.tzinfo) -> datetime.tzinfo:
    """Resolve a TZID parameter, falling back to default_zone when it is blank or unknown."""
    if not tzid or not tzid.strip():
        return default_zone
    resolved = normalize_timezone_name(tzid)
    if resolved is None:
        logger.warning("Unknown TZID %r, using %s", tzid, default_zone)
        return default_zone
    return _zone_for(resolved)


def start_of_day_millis(now: datetime.datetime, zone: datetime.tzinfo, plus_days: int = 0) -> int:
    """Epoch millis of local midnight of now's date (in zone) shifted by plus_days."""
    local_date = now.astimezone(zone).date() + datetime.timedelta(days=plus_days)
    midnight = datetime.datetime.combine(local_date, datetime.time.min, tzinfo=zone)
    return to_epoch_millis(midnight)


def end_of_day_millis(now: datetime.datetime, zone: datetime.tzinfo, plus_days: int = 0) -> int:
    """Epoch millis of 23:59:59 local time, plus_days after now's date (in zone)."""
    local_date = now.astimezone(zone).date() + datetime.timedelta(days=plus_days)
    last_second = datetime.datetime.combine(local_date, datetime.time(23, 59, 59), tzinfo=zone)
    return to_epoch_millis(last_second)


def from_epoch_millis(epoch_millis: int, zone: datetime.tzinfo) -> datetime.datetime:
    """Convert epoch millis into an aware datetime in zone."""
    return (_EPOCH + datetime.timedelta(milliseconds=epoch_millis)).astimezone(zone)

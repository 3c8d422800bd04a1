"""DTSTART/DTEND/DURATION resolution for school iCal feeds.

Values are resolved to epoch milliseconds plus a date-only flag. Every parse
failure yields None; callers treat the owning event as incomplete.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass
from typing import Optional

from icalendar.prop import vDuration

from examsync.core.timezone_utils import get_zone, resolve_zone, to_epoch_millis

logger = logging.getLogger(__name__)

DAY_MILLIS = 24 * 60 * 60 * 1000

_DATE_PATTERN = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_DATETIME_PATTERN = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})?$")


@dataclass(frozen=True)
class ParsedDateTime:
    """An absolute instant and whether the source value was a plain date."""

    epoch_millis: int
    is_date_only: bool

    def plus_millis(self, millis: int, is_date_only: Optional[bool] = None) -> ParsedDateTime:
        return ParsedDateTime(
            epoch_millis=self.epoch_millis + millis,
            is_date_only=self.is_date_only if is_date_only is None else is_date_only,
        )


def _parse_date(value: str) -> datetime.date:
    match = _DATE_PATTERN.match(value)
    if match is None:
        raise ValueError(f"not a YYYYMMDD date: {value!r}")
    year, month, day = (int(part) for part in match.groups())
    return datetime.date(year, month, day)


def _parse_local_datetime(value: str) -> datetime.datetime:
    match = _DATETIME_PATTERN.match(value)
    if match is None:
        raise ValueError(f"not a YYYYMMDDTHHMM[SS] value: {value!r}")
    year, month, day, hour, minute, second = match.groups()
    return datetime.datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second or 0)
    )


def resolve_datetime(
    value: str,
    tzid: Optional[str] = None,
    value_type: Optional[str] = None,
    default_zone: Optional[datetime.tzinfo] = None,
) -> Optional[ParsedDateTime]:
    """Resolve a DTSTART/DTEND value.

    Rules, in order:
        - ``VALUE=DATE`` or an 8 character value: local midnight, date-only
        - trailing ``Z``: UTC date-time
        - anything else: floating date-time in the TZID zone (or default_zone)

    Unknown TZIDs fall back to default_zone.

    Args:
        value: Raw property value, e.g. ``20250310T080000``
        tzid: Optional TZID parameter
        value_type: Optional VALUE parameter
        default_zone: Zone for floating values; defaults to the school zone

    Returns:
        ParsedDateTime, or None if the value cannot be parsed
    """
    zone = default_zone or get_zone()
    text = (value or "").strip()

    try:
        if (value_type or "").upper() == "DATE" or len(text) == 8:
            date = _parse_date(text)
            midnight = datetime.datetime.combine(
                date, datetime.time.min, tzinfo=resolve_zone(tzid, zone)
            )
            return ParsedDateTime(epoch_millis=to_epoch_millis(midnight), is_date_only=True)

        if text.endswith("Z"):
            utc_dt = _parse_local_datetime(text[:-1]).replace(tzinfo=datetime.UTC)
            return ParsedDateTime(epoch_millis=to_epoch_millis(utc_dt), is_date_only=False)

        local_dt = _parse_local_datetime(text).replace(tzinfo=resolve_zone(tzid, zone))
        return ParsedDateTime(epoch_millis=to_epoch_millis(local_dt), is_date_only=False)
    except (ValueError, OverflowError) as e:
        logger.debug("Unparseable date value %r (TZID=%s): %s", value, tzid, e)
        return None


def parse_duration_millis(value: str) -> Optional[int]:
    """Parse an RFC 5545 / ISO 8601 duration (``PT45M``, ``P1D``, ``-PT5M``) to millis."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        delta = vDuration.from_ical(text)
    except (ValueError, TypeError) as e:
        logger.debug("Unparseable DURATION %r: %s", value, e)
        return None
    if not isinstance(delta, datetime.timedelta):
        return None
    return delta // datetime.timedelta(milliseconds=1)

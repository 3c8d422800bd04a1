"""Fold unfolded iCal lines into flat IntermediateEvent values.

One extractor serves all importers. The ExtractionPolicy decides whether an
event without a resolvable end is kept: exams are points in time and only need
a start, lessons and school events need both ends.

Malformed properties and incomplete VEVENT blocks are dropped silently (DEBUG
log only); a single broken block never aborts the rest of the feed.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Union

from .datetime_resolver import DAY_MILLIS, ParsedDateTime, parse_duration_millis, resolve_datetime
from .ics_lines import parse_property_line, unfold_lines
from .text_normalizer import TextNormalizer, unescape_ical_text

logger = logging.getLogger(__name__)

BEGIN_VEVENT = "BEGIN:VEVENT"
END_VEVENT = "END:VEVENT"


@dataclass(frozen=True)
class ExtractionPolicy:
    """Which fields an event needs before it is emitted."""

    require_end: bool


EXAM_POLICY = ExtractionPolicy(require_end=False)
RANGE_POLICY = ExtractionPolicy(require_end=True)


@dataclass(frozen=True)
class IntermediateEvent:
    """Typed view of one VEVENT, valid for a single parse pass."""

    uid: Optional[str]
    summary: str
    description: Optional[str]
    location: Optional[str]
    starts_at: ParsedDateTime
    ends_at: Optional[ParsedDateTime]

    @property
    def starts_at_epoch_millis(self) -> int:
        return self.starts_at.epoch_millis

    @property
    def ends_at_epoch_millis(self) -> Optional[int]:
        return self.ends_at.epoch_millis if self.ends_at is not None else None

    @property
    def duration_millis(self) -> int:
        """End minus start; 0 when there is no end."""
        if self.ends_at is None:
            return 0
        return self.ends_at.epoch_millis - self.starts_at.epoch_millis

    @property
    def is_date_only(self) -> bool:
        """True if either end was given as a plain date."""
        return self.starts_at.is_date_only or (
            self.ends_at is not None and self.ends_at.is_date_only
        )

    def unique_key(self) -> str:
        """Key used to attach movement hints: the uid, else summary|start|end."""
        if self.uid and self.uid.strip():
            return self.uid
        end = self.ends_at_epoch_millis if self.ends_at is not None else ""
        return f"{self.summary}|{self.starts_at_epoch_millis}|{end}"


class _ScratchEvent:
    """Mutable accumulator for the VEVENT currently being read."""

    __slots__ = ("uid", "summary", "description", "location", "starts_at", "ends_at", "duration_millis")

    def __init__(self) -> None:
        self.uid: Optional[str] = None
        self.summary: Optional[str] = None
        self.description: Optional[str] = None
        self.location: Optional[str] = None
        self.starts_at: Optional[ParsedDateTime] = None
        self.ends_at: Optional[ParsedDateTime] = None
        self.duration_millis: Optional[int] = None

    def effective_end(self) -> Optional[ParsedDateTime]:
        """Explicit DTEND, else start + DURATION, else start + 1 day for date-only starts."""
        if self.ends_at is not None:
            return self.ends_at
        if self.starts_at is None:
            return None
        if self.duration_millis is not None:
            return self.starts_at.plus_millis(self.duration_millis, is_date_only=False)
        if self.starts_at.is_date_only:
            return self.starts_at.plus_millis(DAY_MILLIS, is_date_only=True)
        return None

    def to_event(self, policy: ExtractionPolicy) -> Optional[IntermediateEvent]:
        if self.starts_at is None or not self.summary or not self.summary.strip():
            return None
        end = self.effective_end()
        if end is None and policy.require_end:
            return None
        return IntermediateEvent(
            uid=self.uid,
            summary=self.summary,
            description=self.description,
            location=self.location,
            starts_at=self.starts_at,
            ends_at=end,
        )


def _optional_text(value: str, normalizer: Optional[TextNormalizer]) -> str:
    text = unescape_ical_text(value)
    if normalizer is not None and text:
        text = normalizer.normalize(text)
    return text


def extract_events(
    source: Union[str, Iterable[str]],
    policy: ExtractionPolicy = RANGE_POLICY,
    default_zone: Optional[datetime.tzinfo] = None,
    normalizer: Optional[TextNormalizer] = None,
) -> list[IntermediateEvent]:
    """Extract IntermediateEvents from raw iCal text or already unfolded lines.

    Args:
        source: Raw calendar text, or logical lines from unfold_lines()
        policy: Required-field policy (EXAM_POLICY or RANGE_POLICY)
        default_zone: Zone for floating times and date-only values
        normalizer: Optional text normalizer applied to summary, description and location

    Returns:
        Events in feed order
    """
    lines = unfold_lines(source) if isinstance(source, str) else source

    events: list[IntermediateEvent] = []
    scratch: Optional[_ScratchEvent] = None
    nested_depth = 0
    dropped = 0

    for raw_line in lines:
        line = raw_line.rstrip()
        marker = line.upper()

        if marker == BEGIN_VEVENT:
            scratch = _ScratchEvent()
            nested_depth = 0
            continue

        if marker == END_VEVENT:
            if scratch is not None:
                event = scratch.to_event(policy)
                if event is None:
                    dropped += 1
                    logger.debug("Dropping incomplete VEVENT (uid=%s)", scratch.uid)
                else:
                    events.append(event)
            scratch = None
            continue

        if scratch is None:
            continue

        # VALARM and other sub-components must not overwrite event fields
        if marker.startswith("BEGIN:"):
            nested_depth += 1
            continue
        if marker.startswith("END:") and nested_depth > 0:
            nested_depth -= 1
            continue
        if nested_depth > 0:
            continue

        prop = parse_property_line(line)
        if prop is None:
            continue

        if prop.key == "UID":
            scratch.uid = unescape_ical_text(prop.value)
        elif prop.key == "SUMMARY":
            scratch.summary = _optional_text(prop.value, normalizer)
        elif prop.key == "DESCRIPTION":
            scratch.description = _optional_text(prop.value, normalizer)
        elif prop.key == "LOCATION":
            scratch.location = _optional_text(prop.value, normalizer)
        elif prop.key == "DTSTART":
            scratch.starts_at = resolve_datetime(
                prop.value, prop.params.get("TZID"), prop.params.get("VALUE"), default_zone
            )
        elif prop.key == "DTEND":
            scratch.ends_at = resolve_datetime(
                prop.value, prop.params.get("TZID"), prop.params.get("VALUE"), default_zone
            )
        elif prop.key == "DURATION":
            scratch.duration_millis = parse_duration_millis(prop.value)

    if dropped:
        logger.debug("Dropped %d incomplete VEVENT blocks", dropped)
    logger.debug("Extracted %d events (require_end=%s)", len(events), policy.require_end)
    return events

"""Detect displaced lessons and room changes from weekly timetable patterns.

Feeds do not say that a lesson was moved. Lessons of one subject are grouped
and their weekly slot (weekday, start time, duration) is compared with the
most common slot of the group. A lesson in a slot that occurs only once is
treated as moved, and its expected original slot is placed in the same week.
"""

from __future__ import annotations

import datetime
import logging
import re
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from examsync.calendar.event_extractor import IntermediateEvent
from examsync.core.timezone_utils import from_epoch_millis, to_epoch_millis

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 5
MIN_DOMINANT_SLOT_COUNT = 2

_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True)
class SlotSignature:
    """Weekly slot fingerprint; day_of_week is ISO (Monday=1)."""

    day_of_week: int
    hour: int
    minute: int
    duration_millis: int


@dataclass(frozen=True)
class DominantLocation:
    normalized: str
    display: str
    count: int


@dataclass
class MovementHints:
    """Per-lesson hints keyed by IntermediateEvent.unique_key()."""

    moved_ids: set[str] = field(default_factory=set)
    original_slot_by_event_id: dict[str, tuple[int, int]] = field(default_factory=dict)
    location_changed_ids: set[str] = field(default_factory=set)
    original_location_by_event_id: dict[str, str] = field(default_factory=dict)


def subject_key(summary: str) -> str:
    """Lowercased first space-delimited token of the stripped summary."""
    return summary.strip().lower().split(" ", 1)[0]


def normalize_location(value: Optional[str]) -> str:
    """Trim, lowercase and drop all whitespace so ``Aula 1`` equals ``aula1``."""
    return _WHITESPACE_RUN.sub("", (value or "").strip().lower())


def slot_signature(event: IntermediateEvent, zone: datetime.tzinfo) -> SlotSignature:
    starts_at = from_epoch_millis(event.starts_at_epoch_millis, zone)
    return SlotSignature(
        day_of_week=starts_at.isoweekday(),
        hour=starts_at.hour,
        minute=starts_at.minute,
        duration_millis=max(event.duration_millis, 1),
    )


def expected_original_slot_for_week(
    lesson_starts_at_millis: int, dominant_slot: SlotSignature, zone: datetime.tzinfo
) -> tuple[int, int]:
    """Place the dominant slot into the Monday-anchored week of the lesson.

    Returns:
        (start, end) epoch millis of the slot the lesson was expected in
    """
    lesson_date = from_epoch_millis(lesson_starts_at_millis, zone).date()
    week_start = lesson_date - datetime.timedelta(days=lesson_date.isoweekday() - 1)
    target_date = week_start + datetime.timedelta(days=dominant_slot.day_of_week - 1)
    target_start = datetime.datetime.combine(
        target_date, datetime.time(dominant_slot.hour, dominant_slot.minute), tzinfo=zone
    )
    start_millis = to_epoch_millis(target_start)
    return start_millis, start_millis + dominant_slot.duration_millis


def _dominant_location(lessons: Sequence[IntermediateEvent]) -> Optional[DominantLocation]:
    displays: dict[str, str] = {}
    counts: Counter[str] = Counter()
    for lesson in lessons:
        location = (lesson.location or "").strip()
        if not location:
            continue
        normalized = normalize_location(location)
        displays.setdefault(normalized, location)
        counts[normalized] += 1

    if not counts:
        return None
    # Counter.most_common keeps insertion order among equal counts
    normalized, count = counts.most_common(1)[0]
    return DominantLocation(normalized=normalized, display=displays[normalized], count=count)


def _detect_group(
    lessons: Sequence[IntermediateEvent], zone: datetime.tzinfo, hints: MovementHints
) -> None:
    signatures = [slot_signature(lesson, zone) for lesson in lessons]
    slot_counts = Counter(signatures)
    dominant_slot, dominant_count = slot_counts.most_common(1)[0]
    if dominant_count < MIN_DOMINANT_SLOT_COUNT:
        return

    lessons_by_slot: dict[SlotSignature, list[IntermediateEvent]] = defaultdict(list)
    for lesson, signature in zip(lessons, signatures):
        lessons_by_slot[signature].append(lesson)
    dominant_location_by_slot = {
        slot: _dominant_location(slot_lessons) for slot, slot_lessons in lessons_by_slot.items()
    }

    for lesson, signature in zip(lessons, signatures):
        event_id = lesson.unique_key()
        current_location = (lesson.location or "").strip()

        if signature != dominant_slot and slot_counts[signature] == 1:
            hints.moved_ids.add(event_id)
            hints.original_slot_by_event_id[event_id] = expected_original_slot_for_week(
                lesson.starts_at_epoch_millis, dominant_slot, zone
            )
            dominant_location = dominant_location_by_slot.get(dominant_slot)
            if (
                dominant_location is not None
                and current_location
                and normalize_location(current_location) != dominant_location.normalized
            ):
                hints.location_changed_ids.add(event_id)
                hints.original_location_by_event_id[event_id] = dominant_location.display
            continue

        dominant_location = dominant_location_by_slot.get(signature)
        if dominant_location is None or dominant_location.count < 2 or not current_location:
            continue
        if normalize_location(current_location) != dominant_location.normalized:
            hints.location_changed_ids.add(event_id)
            hints.original_location_by_event_id[event_id] = dominant_location.display


def detect_moved_lessons(
    events: Sequence[IntermediateEvent], zone: datetime.tzinfo
) -> MovementHints:
    """Find lessons outside their subject's usual weekly slot and room changes.

    Args:
        events: Lesson-classified events of one sync
        zone: School time zone used for weekday/time fingerprints

    Returns:
        MovementHints keyed by IntermediateEvent.unique_key()
    """
    hints = MovementHints()
    groups: dict[str, list[IntermediateEvent]] = defaultdict(list)
    for event in events:
        groups[subject_key(event.summary)].append(event)

    for lessons in groups.values():
        if len(lessons) < MIN_GROUP_SIZE:
            continue
        _detect_group(lessons, zone, hints)

    logger.debug(
        "Movement detection: %d moved, %d room changes across %d subjects",
        len(hints.moved_ids),
        len(hints.location_changed_ids),
        len(groups),
    )
    return hints

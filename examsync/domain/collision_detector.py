"""Find exams that overlap timetable lessons or school events."""

from __future__ import annotations

import datetime
import logging
import re
from collections import defaultdict
from collections.abc import Sequence
from typing import Optional

from examsync.core.timezone_utils import from_epoch_millis, get_zone
from examsync.models import CollisionSource, Exam, ExamCollision, SchoolEvent, TimetableLesson

logger = logging.getLogger(__name__)

EXAM_SLOT_LABELS = ("prüfung", "pruefung", "exam", "test")

_NON_TOKEN_CHARS = re.compile(r"[^a-z0-9äöü]")


def normalize_token(text: str) -> str:
    return _NON_TOKEN_CHARS.sub("", text.strip().lower())


def is_likely_same_subject_lesson(exam: Exam, lesson: TimetableLesson) -> bool:
    """Best-effort match of the exam subject against the lesson title.

    An exam usually takes place in a lesson of its own subject, which is not a
    conflict.
    """
    exam_subject = normalize_token(exam.subject or "")
    if not exam_subject:
        return False
    if exam_subject in normalize_token(lesson.title):
        return True

    first_token = lesson.title.split("·", 1)[0].split("_", 1)[0].split(" ", 1)[0]
    return normalize_token(first_token) == exam_subject


def looks_like_exam_slot_label(text: str) -> bool:
    lowered = text.lower()
    return any(label in lowered for label in EXAM_SLOT_LABELS)


def is_all_day_conflict(
    exam_at_millis: int, event_start_millis: int, event_end_millis: int, zone: datetime.tzinfo
) -> bool:
    """Compare calendar dates in zone; the event end date is exclusive."""
    if event_end_millis <= event_start_millis:
        return False
    exam_date = from_epoch_millis(exam_at_millis, zone).date()
    start_date = from_epoch_millis(event_start_millis, zone).date()
    end_date_exclusive = from_epoch_millis(event_end_millis, zone).date()
    return start_date <= exam_date < end_date_exclusive


def _lesson_collision(exam: Exam, lesson: TimetableLesson) -> Optional[ExamCollision]:
    exam_at = exam.starts_at_epoch_millis
    has_valid_range = lesson.ends_at_epoch_millis > lesson.starts_at_epoch_millis
    overlaps = has_valid_range and lesson.starts_at_epoch_millis <= exam_at < lesson.ends_at_epoch_millis
    if not overlaps:
        return None
    if is_likely_same_subject_lesson(exam, lesson) or looks_like_exam_slot_label(lesson.title):
        return None
    return ExamCollision(
        exam_id=exam.id,
        exam_title=exam.title,
        exam_starts_at_epoch_millis=exam_at,
        source=CollisionSource.LESSON,
        source_id=lesson.id,
        source_title=lesson.title,
        source_starts_at_epoch_millis=lesson.starts_at_epoch_millis,
        source_ends_at_epoch_millis=lesson.ends_at_epoch_millis,
        source_is_all_day=False,
    )


def _event_collision(
    exam: Exam, event: SchoolEvent, zone: datetime.tzinfo
) -> Optional[ExamCollision]:
    exam_at = exam.starts_at_epoch_millis
    if event.is_all_day:
        conflicts = is_all_day_conflict(
            exam_at, event.starts_at_epoch_millis, event.ends_at_epoch_millis, zone
        )
    else:
        conflicts = event.starts_at_epoch_millis <= exam_at < event.ends_at_epoch_millis
    if not conflicts:
        return None
    return ExamCollision(
        exam_id=exam.id,
        exam_title=exam.title,
        exam_starts_at_epoch_millis=exam_at,
        source=CollisionSource.EVENT,
        source_id=event.id,
        source_title=event.title,
        source_starts_at_epoch_millis=event.starts_at_epoch_millis,
        source_ends_at_epoch_millis=event.ends_at_epoch_millis,
        source_is_all_day=event.is_all_day,
    )


def _dedupe_key(collision: ExamCollision) -> tuple[str, CollisionSource, str, int, int]:
    return (
        collision.exam_id,
        collision.source,
        collision.source_id,
        collision.source_starts_at_epoch_millis,
        collision.source_ends_at_epoch_millis,
    )


def detect_exam_collisions(
    exams: Sequence[Exam],
    lessons: Sequence[TimetableLesson],
    events: Sequence[SchoolEvent],
    zone: Optional[datetime.tzinfo] = None,
) -> list[ExamCollision]:
    """List every lesson or event that overlaps an exam's start time.

    Lessons and timed events overlap when the exam starts inside their
    half-open [start, end) range. All-day events overlap when the exam date
    falls on one of their days in zone.

    Args:
        exams: Stored exams; exams without a start time are skipped
        lessons: Stored timetable lessons
        events: Stored school events
        zone: Zone for all-day date comparison (default Europe/Zurich)

    Returns:
        Deduplicated collisions sorted by exam start, exam title, source kind and source start
    """
    zone = zone or get_zone()
    collisions: dict[tuple[str, CollisionSource, str, int, int], ExamCollision] = {}

    for exam in exams:
        if exam.starts_at_epoch_millis <= 0:
            continue
        found = [_lesson_collision(exam, lesson) for lesson in lessons]
        found += [_event_collision(exam, event, zone) for event in events]
        for collision in found:
            if collision is not None:
                collisions.setdefault(_dedupe_key(collision), collision)

    result = sorted(
        collisions.values(),
        key=lambda c: (
            c.exam_starts_at_epoch_millis,
            c.exam_title.lower(),
            c.source.ordinal,
            c.source_starts_at_epoch_millis,
        ),
    )
    logger.debug("Detected %d exam collisions across %d exams", len(result), len(exams))
    return result


def collisions_by_exam(collisions: Sequence[ExamCollision]) -> dict[str, list[ExamCollision]]:
    """Group collisions per exam id, lessons first, then by start and title."""
    grouped: dict[str, list[ExamCollision]] = defaultdict(list)
    for collision in collisions:
        grouped[collision.exam_id].append(collision)
    return {
        exam_id: sorted(
            entries,
            key=lambda c: (c.source.ordinal, c.source_starts_at_epoch_millis, c.source_title.lower()),
        )
        for exam_id, entries in grouped.items()
    }

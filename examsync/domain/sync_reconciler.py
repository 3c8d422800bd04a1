"""Compare two timetable snapshots and attribute the differences."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from examsync.core.timezone_utils import now_utc, to_epoch_millis
from examsync.models import TimetableChangeEntry, TimetableChangeType, TimetableLesson

from .movement_detector import normalize_location

logger = logging.getLogger(__name__)

MAX_CHANGE_ENTRIES = 40


@dataclass(frozen=True)
class LessonChangeSummary:
    total: int = 0
    moved_count: int = 0
    room_changed_count: int = 0
    is_first_sync: bool = False
    entries: list[TimetableChangeEntry] = field(default_factory=list)


def reconcile_lessons(
    old_lessons: Sequence[TimetableLesson],
    new_lessons: Sequence[TimetableLesson],
    now: Optional[datetime.datetime] = None,
) -> LessonChangeSummary:
    """Count lessons that changed between the previous and the current sync.

    A lesson counts as changed when it was added or removed, or when its time,
    location, moved flag or room-change flag differs. Moved and room-change
    counts only include lessons whose flag is set and whose underlying value
    (or the flag itself) changed.

    An empty previous snapshot is the first sync: all counts are zero so the
    initial import does not report every lesson as new.

    Args:
        old_lessons: Lessons stored by the previous sync
        new_lessons: Lessons produced by the current sync
        now: Timestamp for change entries (defaults to now_utc())

    Returns:
        LessonChangeSummary with at most 40 entries, newest first
    """
    if not old_lessons:
        return LessonChangeSummary(is_first_sync=True)

    changed_at = to_epoch_millis(now or now_utc())
    old_by_id = {lesson.id: lesson for lesson in old_lessons}
    new_by_id = {lesson.id: lesson for lesson in new_lessons}

    changed_ids: set[str] = set()
    moved = 0
    room_changed = 0
    entries: list[TimetableChangeEntry] = []

    def entry(
        lesson: TimetableLesson,
        change_type: TimetableChangeType,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> TimetableChangeEntry:
        return TimetableChangeEntry(
            lesson_id=lesson.id,
            title=lesson.title,
            starts_at_epoch_millis=lesson.starts_at_epoch_millis,
            change_type=change_type,
            old_value=old_value,
            new_value=new_value,
            changed_at_epoch_millis=changed_at,
        )

    for lesson_id, old in old_by_id.items():
        if lesson_id not in new_by_id:
            changed_ids.add(lesson_id)
            entries.append(entry(old, TimetableChangeType.REMOVED))

    for lesson_id, new in new_by_id.items():
        old = old_by_id.get(lesson_id)
        if old is None:
            changed_ids.add(lesson_id)
            moved += int(new.is_moved)
            room_changed += int(new.is_location_changed)
            entries.append(entry(new, TimetableChangeType.ADDED))
            continue

        time_changed = (
            old.starts_at_epoch_millis != new.starts_at_epoch_millis
            or old.ends_at_epoch_millis != new.ends_at_epoch_millis
        )
        location_changed = normalize_location(old.location) != normalize_location(new.location)
        moved_flag_changed = old.is_moved != new.is_moved
        room_flag_changed = old.is_location_changed != new.is_location_changed

        if time_changed or location_changed or moved_flag_changed or room_flag_changed:
            changed_ids.add(lesson_id)

        old_start, new_start = str(old.starts_at_epoch_millis), str(new.starts_at_epoch_millis)
        if new.is_moved and (time_changed or moved_flag_changed):
            moved += 1
            entries.append(entry(new, TimetableChangeType.MOVED, old_start, new_start))
        elif time_changed:
            entries.append(entry(new, TimetableChangeType.TIME_CHANGED, old_start, new_start))

        if new.is_location_changed and (location_changed or room_flag_changed):
            room_changed += 1
            entries.append(entry(new, TimetableChangeType.ROOM_CHANGED, old.location, new.location))

    entries.sort(key=lambda e: e.changed_at_epoch_millis, reverse=True)
    summary = LessonChangeSummary(
        total=len(changed_ids),
        moved_count=moved,
        room_changed_count=room_changed,
        is_first_sync=False,
        entries=entries[:MAX_CHANGE_ENTRIES],
    )
    logger.info(
        "Timetable changes: %d changed, %d moved, %d room changes",
        summary.total,
        summary.moved_count,
        summary.room_changed_count,
    )
    return summary

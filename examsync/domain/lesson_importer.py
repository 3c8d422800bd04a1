"""Timetable importer: schulNetz lessons of the coming weeks with movement hints."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from examsync.calendar.event_extractor import IntermediateEvent
from examsync.core.http_client import IcalTextSource
from examsync.core.timezone_utils import end_of_day_millis, start_of_day_millis
from examsync.models import TimetableImportResult, TimetableLesson

from .classifiers import has_shift_keyword, is_lesson_like
from .importer_base import IcalImporter, clean_optional_text, collapse_whitespace, dedupe_by_id, stable_id
from .movement_detector import MovementHints, detect_moved_lessons

logger = logging.getLogger(__name__)

LESSON_ID_PREFIX = "lesson"
DEFAULT_LESSON_WINDOW_DAYS = 35
MAX_TITLE_LENGTH = 140
MAX_LOCATION_LENGTH = 160
DEFAULT_LESSON_TITLE = "Lektion"
TITLE_SEPARATOR = " · "


def format_lesson_title(raw_summary: str) -> str:
    """Turn a schulNetz course code into a readable lesson title.

    Examples:
        >>> format_lesson_title("mat_l24B_HeiCa")
        'MAT · l24B · HeiCa'
        >>> format_lesson_title("Sport")
        'Sport'
    """
    raw = (raw_summary or "").strip()
    if not raw:
        return DEFAULT_LESSON_TITLE

    parts = [part.strip() for part in raw.split("_") if part.strip()]
    if len(parts) < 2:
        return collapse_whitespace(raw.replace("_", " "))

    return TITLE_SEPARATOR.join([parts[0].upper(), *parts[1:3]])


class TimetableImporter(IcalImporter[TimetableImportResult]):
    """Import lessons starting between today and the end of the lesson window."""

    def __init__(
        self,
        text_source: Optional[IcalTextSource] = None,
        zone: Optional[datetime.tzinfo] = None,
        window_days: int = DEFAULT_LESSON_WINDOW_DAYS,
    ) -> None:
        super().__init__(text_source=text_source, zone=zone)
        self.window_days = window_days

    def build_result(
        self, events: list[IntermediateEvent], now: datetime.datetime
    ) -> TimetableImportResult:
        window_start = start_of_day_millis(now, self.zone)
        window_end = end_of_day_millis(now, self.zone, plus_days=self.window_days)

        lessons_in_window = sorted(
            (
                e
                for e in events
                if window_start <= e.starts_at_epoch_millis <= window_end and is_lesson_like(e)
            ),
            key=lambda e: e.starts_at_epoch_millis,
        )

        if not lessons_in_window:
            logger.info("No lessons in iCal feed within %d days", self.window_days)
            return TimetableImportResult(lessons=[], message="Keine Lektionen im iCal gefunden.")

        hints = detect_moved_lessons(lessons_in_window, self.zone)
        lessons = dedupe_by_id(
            (self._to_lesson(e, hints) for e in lessons_in_window), key=lambda lesson: lesson.id
        )
        logger.info(
            "Imported %d lessons (%d moved, %d room changes)",
            len(lessons),
            sum(1 for lesson in lessons if lesson.is_moved),
            sum(1 for lesson in lessons if lesson.is_location_changed),
        )
        return TimetableImportResult(
            lessons=lessons, message=f"{len(lessons)} Lektionen synchronisiert."
        )

    @staticmethod
    def _to_lesson(event: IntermediateEvent, hints: MovementHints) -> TimetableLesson:
        key = event.unique_key()
        is_moved = key in hints.moved_ids or has_shift_keyword(event)
        is_location_changed = key in hints.location_changed_ids
        original_slot = hints.original_slot_by_event_id.get(key) if is_moved else None

        return TimetableLesson(
            id=stable_id(LESSON_ID_PREFIX, event),
            title=format_lesson_title(event.summary)[:MAX_TITLE_LENGTH],
            location=clean_optional_text(event.location, MAX_LOCATION_LENGTH),
            starts_at_epoch_millis=event.starts_at_epoch_millis,
            # is_lesson_like() guarantees an end
            ends_at_epoch_millis=event.ends_at_epoch_millis or event.starts_at_epoch_millis,
            is_moved=is_moved,
            is_location_changed=is_location_changed,
            original_location=(
                hints.original_location_by_event_id.get(key) if is_location_changed else None
            ),
            original_starts_at_epoch_millis=original_slot[0] if original_slot else None,
            original_ends_at_epoch_millis=original_slot[1] if original_slot else None,
        )

"""School event importer: holidays, deadlines, info evenings and other non-exam entries."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from examsync.calendar.event_extractor import IntermediateEvent
from examsync.calendar.text_normalizer import GermanWordNormalizer, TextNormalizer
from examsync.core.http_client import IcalTextSource
from examsync.core.timezone_utils import end_of_day_millis, start_of_day_millis, to_epoch_millis
from examsync.models import SchoolEvent, SchoolEventImportResult

from .classifiers import classify_event_type, is_centerboard_uid, is_event_like
from .importer_base import IcalImporter, clean_optional_text, dedupe_by_id, stable_id

logger = logging.getLogger(__name__)

EVENT_ID_PREFIX = "ical-event"
DEFAULT_EVENT_WINDOW_DAYS = 180
MAX_TITLE_LENGTH = 160
MAX_LOCATION_LENGTH = 180
MAX_DESCRIPTION_LENGTH = 600

SOURCE_SCHULNETZ = "schulNetz"
SOURCE_ICAL = "iCal"


class SchoolEventImporter(IcalImporter[SchoolEventImportResult]):
    """Import events that have not ended yet and start within the event window."""

    def __init__(
        self,
        text_source: Optional[IcalTextSource] = None,
        zone: Optional[datetime.tzinfo] = None,
        window_days: int = DEFAULT_EVENT_WINDOW_DAYS,
        normalizer: Optional[TextNormalizer] = None,
    ) -> None:
        super().__init__(text_source=text_source, zone=zone)
        self.window_days = window_days
        self.normalizer = normalizer or GermanWordNormalizer()

    def _in_window(self, event: IntermediateEvent, now_millis: int, start: int, end: int) -> bool:
        ends_at = event.ends_at_epoch_millis
        if ends_at is None:
            return False
        return ends_at > now_millis and event.starts_at_epoch_millis <= end and ends_at >= start

    def build_result(
        self, events: list[IntermediateEvent], now: datetime.datetime
    ) -> SchoolEventImportResult:
        now_millis = to_epoch_millis(now)
        window_start = start_of_day_millis(now, self.zone)
        window_end = end_of_day_millis(now, self.zone, plus_days=self.window_days)

        upcoming = sorted(
            (
                e
                for e in events
                if self._in_window(e, now_millis, window_start, window_end) and is_event_like(e)
            ),
            key=lambda e: e.starts_at_epoch_millis,
        )

        if not upcoming:
            logger.info("No upcoming school events in iCal feed")
            return SchoolEventImportResult(
                events=[], message="Keine kommenden Events im iCal gefunden."
            )

        school_events = dedupe_by_id((self._to_event(e) for e in upcoming), key=lambda ev: ev.id)
        logger.info("Imported %d school events", len(school_events))
        return SchoolEventImportResult(
            events=school_events, message=f"{len(school_events)} Events synchronisiert."
        )

    def _normalized(self, value: Optional[str], limit: int) -> Optional[str]:
        stripped = (value or "").strip()
        if not stripped:
            return None
        return clean_optional_text(self.normalizer.normalize(stripped), limit)

    def _to_event(self, event: IntermediateEvent) -> SchoolEvent:
        return SchoolEvent(
            id=stable_id(EVENT_ID_PREFIX, event),
            title=self.normalizer.normalize(event.summary)[:MAX_TITLE_LENGTH],
            type=classify_event_type(event),
            location=self._normalized(event.location, MAX_LOCATION_LENGTH),
            description=self._normalized(event.description, MAX_DESCRIPTION_LENGTH),
            starts_at_epoch_millis=event.starts_at_epoch_millis,
            ends_at_epoch_millis=event.ends_at_epoch_millis or event.starts_at_epoch_millis,
            is_all_day=event.is_date_only,
            source=SOURCE_SCHULNETZ if is_centerboard_uid(event.uid) else SOURCE_ICAL,
        )

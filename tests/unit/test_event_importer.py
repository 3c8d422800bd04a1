"""Unit tests for examsync.domain.event_importer."""

import datetime

import pytest

from examsync.domain.event_importer import SOURCE_ICAL, SOURCE_SCHULNETZ, SchoolEventImporter
from examsync.models import SchoolEventType
from tests.ics_builders import NOW, ZURICH, calendar, lesson_event, millis, vevent, zurich

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _feed() -> str:
    return calendar(
        vevent(
            "Sportferien",
            datetime.date(2025, 4, 5),
            datetime.date(2025, 4, 21),
            uid="ev1@schule.ch",
        ),
        vevent("Mathe Test", zurich(2025, 3, 12, 10, 0), zurich(2025, 3, 12, 10, 45), uid="etP_001@centerboard.ch"),
        lesson_event("abc123@centerboard.ch", zurich(2025, 3, 12, 8, 0)),
        vevent(
            "Elternabend",
            zurich(2025, 3, 12, 19, 0),
            zurich(2025, 3, 12, 21, 0),
            uid="ett_900@centerboard.ch",
            location="Aula ueber dem Eingang",
        ),
        vevent("Schulreise", zurich(2025, 3, 9, 8, 0), zurich(2025, 3, 9, 17, 0), uid="ev2@schule.ch"),
        vevent("Herbstanlass", datetime.date(2025, 9, 20), uid="ev3@schule.ch"),
        vevent(
            "Projektwoche",
            datetime.date(2025, 3, 9),
            datetime.date(2025, 3, 12),
            uid="ev4@schule.ch",
        ),
    )


class TestSchoolEventImporter:
    """Tests for SchoolEventImporter.import_from_raw."""

    def test_import_from_raw_when_mixed_feed_then_only_events_in_window(self) -> None:
        """Test exams, lessons, past and far-future entries are excluded."""
        result = SchoolEventImporter(zone=ZURICH).import_from_raw(_feed(), NOW)

        assert result.message == "3 Events synchronisiert."
        assert [event.title for event in result.events] == ["Projektwoche", "Elternabend", "Sportferien"]

    def test_import_from_raw_when_date_only_then_all_day(self) -> None:
        """Test date-only entries are all-day events with exclusive end."""
        events = {e.title: e for e in SchoolEventImporter(zone=ZURICH).import_from_raw(_feed(), NOW).events}

        holidays = events["Sportferien"]
        assert holidays.is_all_day is True
        assert holidays.type is SchoolEventType.HOLIDAY
        assert holidays.source == SOURCE_ICAL
        assert holidays.starts_at_epoch_millis == millis(zurich(2025, 4, 5))
        assert holidays.ends_at_epoch_millis == millis(zurich(2025, 4, 21))

    def test_import_from_raw_when_centerboard_appointment_then_schulnetz_source(self) -> None:
        """Test ett_ appointments are included and normalized."""
        events = {e.title: e for e in SchoolEventImporter(zone=ZURICH).import_from_raw(_feed(), NOW).events}

        evening = events["Elternabend"]
        assert evening.id == "ical-event:ett_900@centerboard.ch"
        assert evening.type is SchoolEventType.INFO
        assert evening.source == SOURCE_SCHULNETZ
        assert evening.location == "Aula über dem Eingang"
        assert evening.is_all_day is False

    def test_import_from_raw_when_event_ongoing_then_included(self) -> None:
        """Test events that started before today but have not ended are kept."""
        events = {e.title: e for e in SchoolEventImporter(zone=ZURICH).import_from_raw(_feed(), NOW).events}

        assert events["Projektwoche"].type is SchoolEventType.SCHOOL

    def test_import_from_raw_when_window_shortened_then_later_events_dropped(self) -> None:
        """Test the window end is configurable."""
        result = SchoolEventImporter(zone=ZURICH, window_days=7).import_from_raw(_feed(), NOW)

        assert [event.title for event in result.events] == ["Projektwoche", "Elternabend"]

    def test_import_from_raw_when_long_description_then_truncated(self) -> None:
        """Test descriptions are capped at 600 characters."""
        raw = calendar(
            vevent(
                "Konzert",
                zurich(2025, 3, 20, 19, 0),
                zurich(2025, 3, 20, 21, 0),
                uid="k1@schule.ch",
                description="x" * 700,
            )
        )

        event = SchoolEventImporter(zone=ZURICH).import_from_raw(raw, NOW).events[0]

        assert len(event.description) == 600
        assert event.type is SchoolEventType.OTHER

    def test_import_from_raw_when_no_events_then_message(self) -> None:
        """Test an empty import reports no upcoming events."""
        result = SchoolEventImporter(zone=ZURICH).import_from_raw(calendar(), NOW)

        assert result.events == []
        assert result.message == "Keine kommenden Events im iCal gefunden."

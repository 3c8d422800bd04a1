"""Unit tests for examsync.domain.movement_detector."""

import pytest

from examsync.domain.movement_detector import (
    SlotSignature,
    detect_moved_lessons,
    expected_original_slot_for_week,
    normalize_location,
    slot_signature,
    subject_key,
)
from tests.ics_builders import ZURICH, intermediate, millis, zurich

pytestmark = [pytest.mark.unit, pytest.mark.fast]

MINUTE = 60 * 1000


def _lesson(uid: str, start, location: str = "Zimmer 12", summary: str = "mat_l24B_HeiCa"):
    return intermediate(summary, start, minutes=45, uid=uid, location=location)


class TestHelpers:
    """Tests for grouping and fingerprint helpers."""

    def test_subject_key_when_summary_then_first_token_lowercased(self) -> None:
        """Test the subject key is the first space-delimited token."""
        assert subject_key("  Mat_l24B extra words") == "mat_l24b"

    @pytest.mark.parametrize(("value", "expected"), [("  Aula 1 ", "aula1"), (None, ""), ("Zimmer\t12", "zimmer12")])
    def test_normalize_location_when_value_then_compact_lowercase(self, value: str | None, expected: str) -> None:
        """Test locations compare without case and whitespace."""
        assert normalize_location(value) == expected

    def test_slot_signature_when_lesson_then_local_weekday_and_time(self) -> None:
        """Test the fingerprint uses the school zone."""
        signature = slot_signature(_lesson("a", zurich(2025, 3, 31, 8, 0)), ZURICH)

        assert signature == SlotSignature(day_of_week=1, hour=8, minute=0, duration_millis=45 * MINUTE)

    def test_expected_original_slot_when_sunday_lesson_then_same_iso_week(self) -> None:
        """Test the week is anchored on the Monday before the lesson."""
        dominant = SlotSignature(day_of_week=3, hour=10, minute=15, duration_millis=90 * MINUTE)

        start, end = expected_original_slot_for_week(millis(zurich(2025, 3, 16, 9, 0)), dominant, ZURICH)

        assert start == millis(zurich(2025, 3, 12, 10, 15))
        assert end == start + 90 * MINUTE


class TestDetectMovedLessons:
    """Tests for detect_moved_lessons."""

    def test_detect_moved_lessons_when_single_off_slot_then_moved(self) -> None:
        """Test a lesson whose slot occurs once is moved into the dominant slot's week."""
        lessons = [
            _lesson("w1", zurich(2025, 3, 10, 8, 0)),
            _lesson("w2", zurich(2025, 3, 17, 8, 0)),
            _lesson("w3", zurich(2025, 3, 24, 8, 0)),
            _lesson("w4", zurich(2025, 3, 31, 8, 0)),
            _lesson("w5", zurich(2025, 4, 8, 10, 0)),
        ]

        hints = detect_moved_lessons(lessons, ZURICH)

        assert hints.moved_ids == {"w5"}
        assert hints.original_slot_by_event_id["w5"] == (
            millis(zurich(2025, 4, 7, 8, 0)),
            millis(zurich(2025, 4, 7, 8, 45)),
        )
        assert hints.location_changed_ids == set()

    def test_detect_moved_lessons_when_tied_slots_then_first_seen_dominates(self) -> None:
        """Test ties between slot counts go to the slot encountered first."""
        lessons = [
            _lesson("mon1", zurich(2025, 3, 10, 8, 0)),
            _lesson("wed1", zurich(2025, 3, 12, 10, 0)),
            _lesson("mon2", zurich(2025, 3, 17, 8, 0)),
            _lesson("wed2", zurich(2025, 3, 19, 10, 0)),
            _lesson("fri", zurich(2025, 3, 21, 13, 0)),
        ]

        hints = detect_moved_lessons(lessons, ZURICH)

        assert hints.moved_ids == {"fri"}
        assert hints.original_slot_by_event_id["fri"][0] == millis(zurich(2025, 3, 17, 8, 0))

    def test_detect_moved_lessons_when_no_repeated_slot_then_nothing(self) -> None:
        """Test a group without a slot occurring twice yields no hints."""
        lessons = [_lesson(f"l{day}", zurich(2025, 3, day, 8 + day % 5, 0)) for day in range(10, 15)]

        hints = detect_moved_lessons(lessons, ZURICH)

        assert hints.moved_ids == set()
        assert hints.location_changed_ids == set()

    def test_detect_moved_lessons_when_subjects_differ_then_grouped_separately(self) -> None:
        """Test lessons of other subjects do not count toward a group."""
        lessons = [
            _lesson("m1", zurich(2025, 3, 10, 8, 0)),
            _lesson("m2", zurich(2025, 3, 17, 8, 0)),
            _lesson("m3", zurich(2025, 3, 24, 8, 0)),
            _lesson("m4", zurich(2025, 3, 31, 8, 0)),
            _lesson("e1", zurich(2025, 3, 11, 9, 0), summary="eng_l24B_Mei"),
        ]

        assert detect_moved_lessons(lessons, ZURICH).moved_ids == set()

    def test_detect_moved_lessons_when_room_differs_then_original_room_reported(self) -> None:
        """Test a lesson in its usual slot but another room gets a room hint."""
        lessons = [
            _lesson("w1", zurich(2025, 3, 10, 8, 0)),
            _lesson("w2", zurich(2025, 3, 17, 8, 0)),
            _lesson("w3", zurich(2025, 3, 24, 8, 0), location="Aula"),
            _lesson("w4", zurich(2025, 3, 31, 8, 0)),
            _lesson("w5", zurich(2025, 4, 7, 8, 0), location=""),
        ]

        hints = detect_moved_lessons(lessons, ZURICH)

        assert hints.moved_ids == set()
        assert hints.location_changed_ids == {"w3"}
        assert hints.original_location_by_event_id == {"w3": "Zimmer 12"}

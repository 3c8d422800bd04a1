"""Unit tests for examsync.domain.collision_detector."""

from typing import Optional

import pytest

from examsync.domain.collision_detector import (
    collisions_by_exam,
    detect_exam_collisions,
    is_all_day_conflict,
    is_likely_same_subject_lesson,
)
from examsync.models import CollisionSource, Exam, SchoolEvent, SchoolEventType, TimetableLesson
from tests.ics_builders import ZURICH, millis, zurich

pytestmark = [pytest.mark.unit, pytest.mark.fast]

MINUTE = 60 * 1000


def _exam(exam_id: str, at: int, title: str = "Mathe Test", subject: Optional[str] = None) -> Exam:
    return Exam(id=exam_id, title=title, subject=subject, starts_at_epoch_millis=at)


def _lesson(lesson_id: str, start: int, minutes: int = 45, title: str = "DEU · l24B · Mei") -> TimetableLesson:
    return TimetableLesson(
        id=lesson_id,
        title=title,
        starts_at_epoch_millis=start,
        ends_at_epoch_millis=start + minutes * MINUTE,
    )


def _event(event_id: str, start: int, end: int, title: str = "Sporttag", all_day: bool = False) -> SchoolEvent:
    return SchoolEvent(
        id=event_id,
        title=title,
        type=SchoolEventType.SCHOOL,
        starts_at_epoch_millis=start,
        ends_at_epoch_millis=end,
        is_all_day=all_day,
    )


EXAM_AT = millis(zurich(2025, 3, 12, 10, 0))


class TestLessonCollisions:
    """Tests for exam/lesson overlaps."""

    def test_detect_exam_collisions_when_lesson_overlaps_then_collision(self) -> None:
        """Test an exam starting inside a lesson of another subject collides."""
        lesson = _lesson("l1", EXAM_AT - 10 * MINUTE)

        collisions = detect_exam_collisions([_exam("e1", EXAM_AT, subject="MAT")], [lesson], [], ZURICH)

        assert len(collisions) == 1
        collision = collisions[0]
        assert collision.source is CollisionSource.LESSON
        assert collision.source_id == "l1"
        assert collision.exam_title == "Mathe Test"
        assert collision.source_is_all_day is False

    def test_detect_exam_collisions_when_same_subject_lesson_then_suppressed(self) -> None:
        """Test the exam's own lesson is not a conflict."""
        lesson = _lesson("l1", EXAM_AT, title="MAT · l24B · HeiCa")

        assert detect_exam_collisions([_exam("e1", EXAM_AT, subject="MAT")], [lesson], [], ZURICH) == []

    def test_detect_exam_collisions_when_lesson_titled_as_exam_then_suppressed(self) -> None:
        """Test lessons that are exam slots are not conflicts."""
        lesson = _lesson("l1", EXAM_AT, title="Prüfung Physik")

        assert detect_exam_collisions([_exam("e1", EXAM_AT)], [lesson], [], ZURICH) == []

    def test_detect_exam_collisions_when_exam_at_lesson_end_then_no_collision(self) -> None:
        """Test the lesson end is exclusive and its start inclusive."""
        ending = _lesson("ending", EXAM_AT - 45 * MINUTE)
        starting = _lesson("starting", EXAM_AT)

        collisions = detect_exam_collisions([_exam("e1", EXAM_AT)], [ending, starting], [], ZURICH)

        assert [c.source_id for c in collisions] == ["starting"]

    def test_detect_exam_collisions_when_lesson_range_empty_then_ignored(self) -> None:
        """Test lessons without a positive duration never collide."""
        lesson = _lesson("l1", EXAM_AT, minutes=0)

        assert detect_exam_collisions([_exam("e1", EXAM_AT)], [lesson], [], ZURICH) == []

    def test_detect_exam_collisions_when_exam_has_no_start_then_skipped(self) -> None:
        """Test exams without a start time are ignored."""
        lesson = _lesson("l1", 0)

        assert detect_exam_collisions([_exam("e1", 0)], [lesson], [], ZURICH) == []

    def test_detect_exam_collisions_when_duplicate_inputs_then_deduplicated(self) -> None:
        """Test the same exam/source pair is reported once."""
        lesson = _lesson("l1", EXAM_AT)

        collisions = detect_exam_collisions([_exam("e1", EXAM_AT)], [lesson, lesson], [], ZURICH)

        assert len(collisions) == 1


class TestEventCollisions:
    """Tests for exam/event overlaps."""

    def test_detect_exam_collisions_when_timed_event_overlaps_then_collision(self) -> None:
        """Test timed events use a half-open range."""
        event = _event("ev1", EXAM_AT - 60 * MINUTE, EXAM_AT + 60 * MINUTE)
        after = _event("ev2", EXAM_AT - 60 * MINUTE, EXAM_AT)

        collisions = detect_exam_collisions([_exam("e1", EXAM_AT)], [], [event, after], ZURICH)

        assert [c.source_id for c in collisions] == ["ev1"]
        assert collisions[0].source is CollisionSource.EVENT

    def test_detect_exam_collisions_when_all_day_event_then_compares_dates(self) -> None:
        """Test all-day events cover their dates with an exclusive end date."""
        holidays = _event(
            "ferien",
            millis(zurich(2025, 4, 5)),
            millis(zurich(2025, 4, 21)),
            title="Sportferien",
            all_day=True,
        )
        inside = _exam("inside", millis(zurich(2025, 4, 20, 10, 0)))
        end_day = _exam("end-day", millis(zurich(2025, 4, 21, 10, 0)))

        collisions = detect_exam_collisions([inside, end_day], [], [holidays], ZURICH)

        assert [c.exam_id for c in collisions] == ["inside"]
        assert collisions[0].source_is_all_day is True

    def test_is_all_day_conflict_when_range_empty_then_false(self) -> None:
        """Test an all-day event without positive length never conflicts."""
        day = millis(zurich(2025, 4, 5))

        assert is_all_day_conflict(day + MINUTE, day, day, ZURICH) is False


class TestOrdering:
    """Tests for result ordering and grouping."""

    def test_detect_exam_collisions_when_several_then_sorted(self) -> None:
        """Test ordering by exam start, then lessons before events."""
        later_exam = _exam("e2", EXAM_AT + 24 * 60 * MINUTE, title="Englisch Test")
        exam = _exam("e1", EXAM_AT)
        lesson = _lesson("l1", EXAM_AT - 5 * MINUTE)
        event = _event("ev1", EXAM_AT - 60 * MINUTE, EXAM_AT + 25 * 60 * MINUTE)

        collisions = detect_exam_collisions([later_exam, exam], [lesson], [event], ZURICH)

        assert [(c.exam_id, c.source_id) for c in collisions] == [("e1", "l1"), ("e1", "ev1"), ("e2", "ev1")]

    def test_collisions_by_exam_when_grouped_then_lessons_first(self) -> None:
        """Test grouping keeps one list per exam with lessons first."""
        exam = _exam("e1", EXAM_AT)
        event = _event("ev1", EXAM_AT - 60 * MINUTE, EXAM_AT + 60 * MINUTE)
        lesson = _lesson("l1", EXAM_AT - 5 * MINUTE)

        grouped = collisions_by_exam(detect_exam_collisions([exam], [lesson], [event], ZURICH))

        assert list(grouped) == ["e1"]
        assert [c.source for c in grouped["e1"]] == [CollisionSource.LESSON, CollisionSource.EVENT]


class TestSameSubjectHeuristic:
    """Tests for is_likely_same_subject_lesson."""

    @pytest.mark.parametrize(
        ("subject", "title", "expected"),
        [
            ("MAT", "MAT · l24B · HeiCa", True),
            ("Bio", "Biologie", True),
            ("Englisch", "E · l24B · Mei", False),
            (None, "MAT · l24B · HeiCa", False),
        ],
    )
    def test_is_likely_same_subject_lesson_when_compared_then_expected(
        self, subject: Optional[str], title: str, expected: bool
    ) -> None:
        """Test subject tokens are matched against lesson titles."""
        exam = _exam("e1", EXAM_AT, subject=subject)

        assert is_likely_same_subject_lesson(exam, _lesson("l1", EXAM_AT, title=title)) is expected

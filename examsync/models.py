"""Domain records produced by the iCal importers - ExamSync version."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .core.timezone_utils import now_epoch_millis


class Exam(BaseModel):
    """An upcoming exam imported from the school calendar."""

    id: str = Field(..., description="Stable id, 'ical:' + uid or composite seed")
    title: str
    subject: Optional[str] = None
    location: Optional[str] = None
    starts_at_epoch_millis: int


class TimetableLesson(BaseModel):
    """One timetable lesson, annotated with movement and room-change hints."""

    id: str = Field(..., description="Stable id, 'lesson:' + uid or composite seed")
    title: str
    location: Optional[str] = None
    starts_at_epoch_millis: int
    ends_at_epoch_millis: int

    # Movement detection
    is_moved: bool = False
    is_location_changed: bool = False
    original_location: Optional[str] = None
    original_starts_at_epoch_millis: Optional[int] = None
    original_ends_at_epoch_millis: Optional[int] = None

    @model_validator(mode="after")
    def _check_original_fields(self) -> TimetableLesson:
        if not self.is_moved and (
            self.original_starts_at_epoch_millis is not None
            or self.original_ends_at_epoch_millis is not None
        ):
            raise ValueError("original start/end may only be set on moved lessons")
        if not self.is_location_changed and self.original_location is not None:
            raise ValueError("original_location may only be set on room-changed lessons")
        return self


class SchoolEventType(str, Enum):
    """Coarse category of a general school calendar entry."""

    SCHOOL = "SCHOOL"
    HOLIDAY = "HOLIDAY"
    DEADLINE = "DEADLINE"
    INFO = "INFO"
    OTHER = "OTHER"


class SchoolEvent(BaseModel):
    """A non-exam, non-lesson calendar entry (holidays, deadlines, info evenings)."""

    id: str = Field(..., description="Stable id, 'ical-event:' + uid or composite seed")
    title: str
    type: SchoolEventType = SchoolEventType.OTHER
    location: Optional[str] = None
    description: Optional[str] = None
    starts_at_epoch_millis: int
    ends_at_epoch_millis: int
    is_all_day: bool = False
    source: Optional[str] = None


class CollisionSource(str, Enum):
    """Kind of entry an exam collides with; lessons sort before events."""

    LESSON = "LESSON"
    EVENT = "EVENT"

    @property
    def ordinal(self) -> int:
        return list(CollisionSource).index(self)


class ExamCollision(BaseModel):
    """An exam that overlaps a lesson or a school event. Derived, never stored."""

    model_config = ConfigDict(frozen=True)

    exam_id: str
    exam_title: str
    exam_starts_at_epoch_millis: int
    source: CollisionSource
    source_id: str
    source_title: str
    source_starts_at_epoch_millis: int
    source_ends_at_epoch_millis: int
    source_is_all_day: bool = False


class TimetableChangeType(str, Enum):
    """What changed about a lesson between two syncs."""

    TIME_CHANGED = "TIME_CHANGED"
    ROOM_CHANGED = "ROOM_CHANGED"
    MOVED = "MOVED"
    ADDED = "ADDED"
    REMOVED = "REMOVED"


class TimetableChangeEntry(BaseModel):
    """One observed timetable change, kept in the sync history."""

    lesson_id: str
    title: str
    starts_at_epoch_millis: int
    change_type: TimetableChangeType
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_at_epoch_millis: int = Field(default_factory=now_epoch_millis)

    def dedupe_key(self) -> str:
        return "|".join(
            (
                self.lesson_id,
                self.change_type.value,
                str(self.starts_at_epoch_millis),
                self.old_value or "",
                self.new_value or "",
                str(self.changed_at_epoch_millis),
            )
        )


class ExamImportResult(BaseModel):
    """Result of an exam import."""

    exams: list[Exam] = Field(default_factory=list)
    message: str


class TimetableImportResult(BaseModel):
    """Result of a timetable import."""

    lessons: list[TimetableLesson] = Field(default_factory=list)
    message: str


class SchoolEventImportResult(BaseModel):
    """Result of a school event import."""

    events: list[SchoolEvent] = Field(default_factory=list)
    message: str

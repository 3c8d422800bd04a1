"""Heuristic classification of extracted calendar entries.

schulNetz (centerboard) feeds mix exams, lessons and appointments in one
calendar. Its UIDs carry markers (``etp_`` exam, ``ett_`` appointment); other
feeds are classified by keyword vocabulary only.
"""

from __future__ import annotations

from examsync.calendar.event_extractor import IntermediateEvent
from examsync.models import SchoolEventType

CENTERBOARD_MARKER = "@centerboard.ch"

MINUTE_MILLIS = 60 * 1000
HOUR_MILLIS = 60 * MINUTE_MILLIS

EXAM_KEYWORDS = (
    "prüfung",
    "pruefung",
    "test",
    "klausur",
    "exam",
    "quiz",
    "lernkontrolle",
    "matura",
    "probe",
    "prüfungstermin",
    "assessment",
    "nachprüfung",
    "nachpruefung",
)

NON_EXAM_KEYWORDS = (
    "lektion",
    "unterricht",
    "stundenplan",
    "ferien",
    "feiertag",
    "schulfrei",
    "elternabend",
    "sporttag",
    "projektwoche",
    "ausflug",
)

EVENT_EXAM_KEYWORDS = (
    "prüfung",
    "pruefung",
    "test",
    "klausur",
    "exam",
    "quiz",
    "lernkontrolle",
    "nachprüfung",
    "nachpruefung",
)

LESSON_KEYWORDS = ("lektion", "unterricht", "stundenplan", "doppellektion", "fachstunde")

SHIFT_KEYWORDS = (
    "verschoben",
    "verschieb",
    "verlegt",
    "nachhol",
    "fällt aus",
    "faellt aus",
    "entfällt",
    "entfaellt",
    "ausfall",
)

# Priority order: the first family with a hit wins.
EVENT_TYPE_KEYWORDS: tuple[tuple[SchoolEventType, tuple[str, ...]], ...] = (
    (SchoolEventType.HOLIDAY, ("ferien", "urlaub", "holiday", "schulfrei", "unterrichtsfrei")),
    (SchoolEventType.DEADLINE, ("abgabe", "deadline", "einsendeschluss", "anmeldeschluss")),
    (SchoolEventType.INFO, ("info", "elternabend", "sprechstunde", "mitteilung")),
    (SchoolEventType.SCHOOL, ("anlass", "event", "ausflug", "projektwoche", "sporttag", "kultur")),
)


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def _uid(event: IntermediateEvent) -> str:
    return (event.uid or "").lower()


def _combined_text(event: IntermediateEvent) -> str:
    return " ".join(
        (event.uid or "", event.summary, event.description or "", event.location or "")
    ).lower()


def is_centerboard_uid(uid: str | None) -> bool:
    return CENTERBOARD_MARKER in (uid or "").lower()


def is_centerboard_exam_uid(uid: str | None) -> bool:
    lowered = (uid or "").lower()
    return "etp_" in lowered or "pruefung@centerboard.ch" in lowered


def is_centerboard_appointment_uid(uid: str | None) -> bool:
    lowered = (uid or "").lower()
    return "ett_" in lowered or "termin@centerboard.ch" in lowered


def is_exam_like(event: IntermediateEvent) -> bool:
    """Return True if the entry is an exam.

    Centerboard UID markers decide first; anything else needs an exam keyword
    and no lesson/event keyword anywhere in uid, summary, description or location.
    """
    if is_centerboard_uid(event.uid):
        if is_centerboard_appointment_uid(event.uid):
            return False
        if is_centerboard_exam_uid(event.uid):
            return True

    text = _combined_text(event)
    return _contains_any(text, EXAM_KEYWORDS) and not _contains_any(text, NON_EXAM_KEYWORDS)


def looks_like_lesson(event: IntermediateEvent) -> bool:
    """Centerboard entry with lesson-sized duration that is not an appointment."""
    if not is_centerboard_uid(event.uid) or is_centerboard_appointment_uid(event.uid):
        return False
    if event.starts_at.is_date_only or (event.ends_at is not None and event.ends_at.is_date_only):
        return False
    if _contains_any(_combined_text(event), LESSON_KEYWORDS):
        return False
    if event.ends_at is None:
        return False
    return 20 * MINUTE_MILLIS < event.duration_millis < 8 * HOUR_MILLIS


def is_event_like(event: IntermediateEvent) -> bool:
    """Return True if the entry belongs in the general school event list."""
    if not event.summary.strip():
        return False
    if _contains_any(_combined_text(event), EVENT_EXAM_KEYWORDS):
        return False
    if is_centerboard_exam_uid(event.uid):
        return False
    if looks_like_lesson(event):
        return False
    if not event.is_date_only and event.duration_millis < 10 * MINUTE_MILLIS:
        return False
    return True


def is_lesson_like(event: IntermediateEvent) -> bool:
    """Return True for centerboard timetable lessons (10 minutes to 8 hours, timed)."""
    uid = _uid(event)
    if CENTERBOARD_MARKER not in uid:
        return False
    if any(marker in uid for marker in ("etp_", "ett_", "pruefung", "termin")):
        return False
    if event.is_date_only or event.ends_at is None:
        return False
    if not 10 * MINUTE_MILLIS <= event.duration_millis <= 8 * HOUR_MILLIS:
        return False
    return bool(event.summary.strip())


def classify_event_type(event: IntermediateEvent) -> SchoolEventType:
    """Map an event onto a SchoolEventType by keyword family."""
    text = " ".join(
        (event.summary, event.description or "", event.location or "", event.uid or "")
    ).lower()
    for event_type, keywords in EVENT_TYPE_KEYWORDS:
        if _contains_any(text, keywords):
            return event_type
    return SchoolEventType.OTHER


def has_shift_keyword(event: IntermediateEvent) -> bool:
    """True if summary or description announce a rescheduled or cancelled lesson."""
    text = f"{event.summary} {event.description or ''}".lower()
    return _contains_any(text, SHIFT_KEYWORDS)

"""Exam importer: upcoming exams with subject/title split from the summary."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from examsync.calendar.event_extractor import EXAM_POLICY, IntermediateEvent
from examsync.calendar.text_normalizer import GermanWordNormalizer, TextNormalizer
from examsync.core.http_client import IcalTextSource
from examsync.core.timezone_utils import to_epoch_millis
from examsync.models import Exam, ExamImportResult

from .classifiers import EXAM_KEYWORDS, is_exam_like
from .importer_base import IcalImporter, clean_optional_text, collapse_whitespace, dedupe_by_id, stable_id

logger = logging.getLogger(__name__)

EXAM_ID_PREFIX = "ical"
MAX_TITLE_LENGTH = 140
MAX_LOCATION_LENGTH = 160
DEFAULT_EXAM_TITLE = "Prüfung"

_SUBJECT_SEPARATORS = (":", "-")
_SUBJECT_TRIM_CHARS = " \t\n-:|·,;/()"


@dataclass(frozen=True)
class ExamSummary:
    subject: Optional[str]
    title: str


def _format_subject_code(code: str) -> str:
    if len(code) <= 4:
        return code.upper()
    return code[:1].upper() + code[1:].lower()


def split_exam_summary(summary: str) -> ExamSummary:
    """Split an exam summary into subject and title.

    Handles schulNetz course codes (``mat_l24B_HeiCa Mathe Test``), explicit
    ``Subject: Title`` / ``Subject - Title`` forms and free text where the
    subject precedes an exam keyword (``Chemie Prüfung Kapitel 3``).

    Examples:
        >>> split_exam_summary("mat_l24B_HeiCa Mathe Test")
        ExamSummary(subject='MAT', title='Mathe Test')
        >>> split_exam_summary("Geschichte: Industrialisierung")
        ExamSummary(subject='Geschichte', title='Industrialisierung')
    """
    text = collapse_whitespace(summary or "")
    if not text:
        return ExamSummary(subject=None, title=DEFAULT_EXAM_TITLE)

    first_token, _, rest = text.partition(" ")
    if "_" in first_token:
        code = first_token.split("_", 1)[0].strip()
        subject = _format_subject_code(code) if code else None
        title = rest.strip() or collapse_whitespace(first_token.replace("_", " "))
        return ExamSummary(subject=subject, title=title)

    separator_positions = [text.find(sep) for sep in _SUBJECT_SEPARATORS if sep in text]
    if separator_positions:
        idx = min(separator_positions)
        head, tail = text[:idx].strip(), text[idx + 1 :].strip()
        if head and tail and 2 <= len(head) <= 24:
            return ExamSummary(subject=head, title=tail)

    lowered = text.lower()
    keyword_positions = [lowered.find(keyword) for keyword in EXAM_KEYWORDS if keyword in lowered]
    if keyword_positions:
        prefix = text[: min(keyword_positions)].strip(_SUBJECT_TRIM_CHARS)
        if 2 <= len(prefix) <= 28:
            return ExamSummary(subject=prefix, title=text)

    return ExamSummary(subject=None, title=text)


class ExamImporter(IcalImporter[ExamImportResult]):
    """Import upcoming exams; entries need a start but no end."""

    policy = EXAM_POLICY

    def __init__(
        self,
        text_source: Optional[IcalTextSource] = None,
        zone: Optional[datetime.tzinfo] = None,
        normalizer: Optional[TextNormalizer] = None,
    ) -> None:
        super().__init__(text_source=text_source, zone=zone)
        self.normalizer = normalizer or GermanWordNormalizer()

    def build_result(self, events: list[IntermediateEvent], now: datetime.datetime) -> ExamImportResult:
        now_millis = to_epoch_millis(now)
        upcoming = sorted(
            (e for e in events if e.starts_at_epoch_millis > now_millis and is_exam_like(e)),
            key=lambda e: e.starts_at_epoch_millis,
        )

        if not upcoming:
            logger.info("No upcoming exams in iCal feed (%d events extracted)", len(events))
            return ExamImportResult(exams=[], message="Keine kommenden Prüfungen im iCal gefunden.")

        exams = dedupe_by_id((self._to_exam(e) for e in upcoming), key=lambda exam: exam.id)
        logger.info("Imported %d exams from iCal feed", len(exams))
        return ExamImportResult(exams=exams, message=f"{len(exams)} Prüfungen aus iCal importiert.")

    def _to_exam(self, event: IntermediateEvent) -> Exam:
        parts = split_exam_summary(self.normalizer.normalize(event.summary))
        return Exam(
            id=stable_id(EXAM_ID_PREFIX, event),
            title=parts.title[:MAX_TITLE_LENGTH],
            subject=parts.subject,
            location=clean_optional_text(event.location, MAX_LOCATION_LENGTH),
            starts_at_epoch_millis=event.starts_at_epoch_millis,
        )

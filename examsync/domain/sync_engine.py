"""Sync orchestration: download once, run all importers, store and reconcile."""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Optional

from examsync.config_loader import Config
from examsync.core.errors import (
    IcalEmptyResponseError,
    extract_http_status_code,
    to_sync_error_message,
)
from examsync.core.http_client import HttpIcalTextSource, IcalHttpResponse
from examsync.core.timezone_utils import get_zone, now_epoch_millis, now_utc
from examsync.core.url_security import normalize_and_validate_ical_url
from examsync.models import Exam, SchoolEvent, SchoolEventImportResult, TimetableLesson

from .event_importer import SchoolEventImporter
from .exam_importer import ExamImporter
from .lesson_importer import TimetableImporter
from .store import CacheHeaders, SyncDiagnostics, SyncStore
from .sync_reconciler import LessonChangeSummary, reconcile_lessons

logger = logging.getLogger(__name__)

EVENTS_DISABLED_MESSAGE = "Event-Import deaktiviert."


@dataclass(frozen=True)
class IcalSyncResult:
    """Counts and diagnostics of one sync run."""

    exams_imported: int = 0
    lessons_imported: int = 0
    events_imported: int = 0
    changed_lessons: int = 0
    moved_lessons: int = 0
    room_changed_lessons: int = 0
    delta_not_modified: bool = False
    is_first_sync: bool = False
    http_status_code: Optional[int] = None
    duration_millis: Optional[int] = None

    def summary_text(self) -> str:
        """One-line German status text for the last sync.

        Examples:
            >>> IcalSyncResult(exams_imported=3, lessons_imported=40, changed_lessons=1).summary_text()
            '3 Prüfungen und 40 Lektionen synchronisiert. 1 Änderung erkannt.'
        """
        if self.delta_not_modified:
            return "Keine Änderungen seit letztem Sync (Delta-Sync)."

        text = f"{self.exams_imported} Prüfungen und {self.lessons_imported} Lektionen synchronisiert."
        if self.events_imported > 0:
            text += f" {self.events_imported} Events synchronisiert."
        if self.changed_lessons > 0:
            suffix = "" if self.changed_lessons == 1 else "en"
            text += f" {self.changed_lessons} Änderung{suffix} erkannt."
        return text

    def notification_text(self) -> Optional[str]:
        """Text of the timetable change notification, None when nothing is worth reporting."""
        if self.delta_not_modified or self.is_first_sync or self.changed_lessons <= 0:
            return None

        suffix = "" if self.changed_lessons == 1 else "en"
        text = f"{self.changed_lessons} Änderung{suffix}"
        if self.moved_lessons > 0 or self.room_changed_lessons > 0:
            text += f" · Verschoben: {self.moved_lessons} · Raum: {self.room_changed_lessons}"
        return text


@dataclass(frozen=True)
class _ImportBatch:
    exams: list[Exam]
    lessons: list[TimetableLesson]
    events: list[SchoolEvent]


def _elapsed_millis(started: float) -> int:
    return max(int((time.monotonic() - started) * 1000), 0)


class IcalSyncEngine:
    """Run exam, timetable and school event imports against one feed download.

    The store is written only after all importers finished; collections and
    cache headers are replaced wholesale in a single write. Conditional requests
    (ETag / Last-Modified) let an unchanged feed short-circuit to a "not modified" result.
    """

    def __init__(
        self,
        store: SyncStore,
        text_source: Optional[HttpIcalTextSource] = None,
        config: Optional[Config] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Persistence for collections, cache headers and change history
            text_source: Optional shared downloader; a new one is created per sync otherwise
            config: Windows, zone, timeouts and event import default
        """
        self.store = store
        self.config = config or Config()
        self._text_source = text_source

        zone = get_zone(self.config.school_timezone)
        self.exam_importer = ExamImporter(zone=zone)
        self.timetable_importer = TimetableImporter(
            zone=zone, window_days=self.config.lesson_window_days
        )
        self.event_importer = SchoolEventImporter(
            zone=zone, window_days=self.config.event_window_days
        )

    @contextlib.asynccontextmanager
    async def _source(self) -> AsyncIterator[HttpIcalTextSource]:
        if self._text_source is not None:
            yield self._text_source
            return
        async with HttpIcalTextSource(
            connect_timeout=self.config.connect_timeout_seconds,
            read_timeout=self.config.read_timeout_seconds,
        ) as source:
            yield source

    async def _download(
        self, url: str, cache_headers: Optional[CacheHeaders] = None
    ) -> IcalHttpResponse:
        headers = cache_headers or CacheHeaders()
        async with self._source() as source:
            return await source.download(
                url,
                previous_etag=headers.etag,
                previous_last_modified=headers.last_modified,
            )

    def _run_importers(self, raw: str, import_events: bool) -> _ImportBatch:
        now = now_utc()
        exam_result = self.exam_importer.import_from_raw(raw, now)
        timetable_result = self.timetable_importer.import_from_raw(raw, now)
        if import_events:
            events_result = self.event_importer.import_from_raw(raw, now)
        else:
            events_result = SchoolEventImportResult(events=[], message=EVENTS_DISABLED_MESSAGE)
        logger.debug(
            "Importer messages: %s | %s | %s",
            exam_result.message,
            timetable_result.message,
            events_result.message,
        )
        return _ImportBatch(
            exams=exam_result.exams,
            lessons=timetable_result.lessons,
            events=events_result.events,
        )

    async def sync_from_url(self, url: str, import_events: Optional[bool] = None) -> IcalSyncResult:
        """Download the feed, replace stored collections and report lesson changes.

        Every attempt updates the stored SyncDiagnostics; successful runs also
        update the last-sync summary, failed runs the last-sync error.

        Args:
            url: iCal link as entered by the user (webcal:// is accepted)
            import_events: Override Config.import_events for this run

        Returns:
            IcalSyncResult; delta_not_modified is set when the server answered 304

        Raises:
            IcalUrlValidationError: url violates the link policy
            IcalFetchError: download failed
            OSError: the store could not be written
        """
        started = time.monotonic()
        attempted_at = now_epoch_millis()
        http_status_code: Optional[int] = None
        try:
            normalized_url = normalize_and_validate_ical_url(url)
            response = await self._download(normalized_url, self.store.read_cache_headers())
            http_status_code = response.http_status_code
            cache_headers = CacheHeaders(etag=response.etag, last_modified=response.last_modified)

            if response.not_modified:
                self.store.save_cache_headers(cache_headers)
                result = IcalSyncResult(
                    delta_not_modified=True,
                    http_status_code=http_status_code,
                    duration_millis=_elapsed_millis(started),
                )
                self._record_success(result, attempted_at)
                logger.info("iCal sync: %s", result.summary_text())
                return result

            if response.body is None:
                raise IcalEmptyResponseError()

            should_import_events = (
                self.config.import_events if import_events is None else import_events
            )
            previous_lessons = self.store.read_lesson_snapshot()
            batch = self._run_importers(response.body, should_import_events)

            self.store.replace_sync_snapshot(batch.exams, batch.lessons, batch.events, cache_headers)

            changes: LessonChangeSummary = reconcile_lessons(previous_lessons, batch.lessons)
            if not changes.is_first_sync and changes.entries:
                self.store.append_timetable_changes(changes.entries)

            result = IcalSyncResult(
                exams_imported=len(batch.exams),
                lessons_imported=len(batch.lessons),
                events_imported=len(batch.events),
                changed_lessons=changes.total,
                moved_lessons=changes.moved_count,
                room_changed_lessons=changes.room_changed_count,
                is_first_sync=changes.is_first_sync,
                http_status_code=http_status_code,
                duration_millis=_elapsed_millis(started),
            )
            self._record_success(result, attempted_at)
            logger.info("iCal sync: %s (%d ms)", result.summary_text(), result.duration_millis)
            return result
        except Exception as e:
            duration = _elapsed_millis(started)
            reason = to_sync_error_message(e)
            logger.warning("iCal sync failed after %d ms: %s", duration, reason)
            self._record_failure(
                reason,
                SyncDiagnostics(
                    last_attempt_at_epoch_millis=attempted_at,
                    last_duration_millis=duration,
                    last_http_status_code=http_status_code or extract_http_status_code(str(e)),
                    last_error_reason=reason,
                ),
            )
            raise

    def _record_success(self, result: IcalSyncResult, attempted_at: int) -> None:
        self.store.mark_sync_success(
            result.summary_text(),
            now_epoch_millis(),
            SyncDiagnostics(
                last_attempt_at_epoch_millis=attempted_at,
                last_duration_millis=result.duration_millis,
                last_http_status_code=result.http_status_code,
                last_delta_not_modified=result.delta_not_modified,
                imported_exams=result.exams_imported,
                imported_lessons=result.lessons_imported,
                imported_events=result.events_imported,
                changed_lessons=result.changed_lessons,
                moved_lessons=result.moved_lessons,
                room_changed_lessons=result.room_changed_lessons,
            ),
        )

    def _record_failure(self, reason: str, diagnostics: SyncDiagnostics) -> None:
        try:
            self.store.mark_sync_error(f"Sync fehlgeschlagen: {reason}", diagnostics)
        except OSError as store_error:
            # The sync error is re-raised by the caller; this one is only logged
            logger.warning("Could not record sync failure: %s", store_error)

    async def test_connection(
        self, url: str, import_events: Optional[bool] = None
    ) -> IcalSyncResult:
        """Download and import url without touching the store."""
        normalized_url = normalize_and_validate_ical_url(url)
        response = await self._download(normalized_url)
        if response.body is None:
            raise IcalEmptyResponseError()

        should_import_events = self.config.import_events if import_events is None else import_events
        batch = self._run_importers(response.body, should_import_events)
        return IcalSyncResult(
            exams_imported=len(batch.exams),
            lessons_imported=len(batch.lessons),
            events_imported=len(batch.events),
            http_status_code=response.http_status_code,
        )

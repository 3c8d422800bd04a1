"""Persistence for synced collections: JSON file store with atomic writes."""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError

from examsync.models import Exam, SchoolEvent, TimetableChangeEntry, TimetableLesson

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 120


class CacheHeaders(BaseModel):
    """HTTP validators of the last successful download, used for delta sync."""

    etag: Optional[str] = None
    last_modified: Optional[str] = None


class SyncDiagnostics(BaseModel):
    """Outcome of the last sync attempt, successful or not."""

    last_attempt_at_epoch_millis: Optional[int] = None
    last_duration_millis: Optional[int] = None
    last_http_status_code: Optional[int] = None
    last_delta_not_modified: bool = False
    imported_exams: int = 0
    imported_lessons: int = 0
    imported_events: int = 0
    changed_lessons: int = 0
    moved_lessons: int = 0
    room_changed_lessons: int = 0
    last_error_reason: Optional[str] = None


class SyncState(BaseModel):
    """On-disk document of JsonSyncStore."""

    exams: list[Exam] = Field(default_factory=list)
    lessons: list[TimetableLesson] = Field(default_factory=list)
    events: list[SchoolEvent] = Field(default_factory=list)
    timetable_changes: list[TimetableChangeEntry] = Field(default_factory=list)
    cache_headers: CacheHeaders = Field(default_factory=CacheHeaders)
    diagnostics: SyncDiagnostics = Field(default_factory=SyncDiagnostics)
    last_sync_at_epoch_millis: Optional[int] = None
    last_sync_summary: Optional[str] = None
    last_sync_error: Optional[str] = None


class SyncStore(Protocol):
    """Storage the sync engine reads previous state from and writes results to."""

    def read_lesson_snapshot(self) -> list[TimetableLesson]: ...

    def read_cache_headers(self) -> CacheHeaders: ...

    def replace_sync_snapshot(
        self,
        exams: Sequence[Exam],
        lessons: Sequence[TimetableLesson],
        events: Sequence[SchoolEvent],
        cache_headers: CacheHeaders,
    ) -> None: ...

    def save_cache_headers(self, headers: CacheHeaders) -> None: ...

    def append_timetable_changes(self, changes: Sequence[TimetableChangeEntry]) -> None: ...

    def mark_sync_success(
        self, summary: str, at_epoch_millis: int, diagnostics: SyncDiagnostics
    ) -> None: ...

    def mark_sync_error(self, error: str, diagnostics: SyncDiagnostics) -> None: ...


def merge_timetable_changes(
    new_changes: Sequence[TimetableChangeEntry],
    current: Sequence[TimetableChangeEntry],
    max_entries: int = MAX_HISTORY_ENTRIES,
) -> list[TimetableChangeEntry]:
    """Merge new entries into the history, newest first, without duplicates."""
    merged = sorted([*new_changes, *current], key=lambda e: e.changed_at_epoch_millis, reverse=True)
    seen: set[str] = set()
    result: list[TimetableChangeEntry] = []
    for entry in merged:
        key = entry.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        result.append(entry)
    return result[:max_entries]


def _snapshot_update(
    exams: Sequence[Exam],
    lessons: Sequence[TimetableLesson],
    events: Sequence[SchoolEvent],
    cache_headers: CacheHeaders,
) -> dict[str, Any]:
    return {
        "exams": list(exams),
        "lessons": list(lessons),
        "events": list(events),
        "cache_headers": cache_headers,
    }


def _success_update(summary: str, at_epoch_millis: int, diagnostics: SyncDiagnostics) -> dict[str, Any]:
    return {
        "last_sync_at_epoch_millis": at_epoch_millis,
        "last_sync_summary": summary.strip(),
        "last_sync_error": None,
        "diagnostics": diagnostics,
    }


def _error_update(error: str, diagnostics: SyncDiagnostics) -> dict[str, Any]:
    return {"last_sync_error": error.strip(), "diagnostics": diagnostics}


class InMemorySyncStore:
    """SyncStore kept in memory; used for dry runs and tests."""

    def __init__(self, state: Optional[SyncState] = None) -> None:
        self.state = state or SyncState()

    def read_lesson_snapshot(self) -> list[TimetableLesson]:
        return list(self.state.lessons)

    def read_cache_headers(self) -> CacheHeaders:
        return self.state.cache_headers

    def replace_sync_snapshot(
        self,
        exams: Sequence[Exam],
        lessons: Sequence[TimetableLesson],
        events: Sequence[SchoolEvent],
        cache_headers: CacheHeaders,
    ) -> None:
        self.state = self.state.model_copy(update=_snapshot_update(exams, lessons, events, cache_headers))

    def save_cache_headers(self, headers: CacheHeaders) -> None:
        self.state = self.state.model_copy(update={"cache_headers": headers})

    def append_timetable_changes(self, changes: Sequence[TimetableChangeEntry]) -> None:
        if changes:
            merged = merge_timetable_changes(changes, self.state.timetable_changes)
            self.state = self.state.model_copy(update={"timetable_changes": merged})

    def mark_sync_success(self, summary: str, at_epoch_millis: int, diagnostics: SyncDiagnostics) -> None:
        self.state = self.state.model_copy(update=_success_update(summary, at_epoch_millis, diagnostics))

    def mark_sync_error(self, error: str, diagnostics: SyncDiagnostics) -> None:
        self.state = self.state.model_copy(update=_error_update(error, diagnostics))


class JsonSyncStore:
    """SyncStore backed by one JSON document.

    Every mutation builds the next state, writes it to a temporary file in the
    same directory and moves it into place with Path.replace(). The in-memory
    state only changes after the write succeeded, so a failed write leaves both
    disk and memory at the previous document. A missing or unreadable file loads
    as an empty state.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Create the store and load the current document.

        Args:
            path: Location of the JSON state file; parent directories are created
        """
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._state = SyncState()

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for sync store: %s", self._path.parent)

        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """(Re)load the document from disk."""
        with self._lock:
            if not self._path.exists():
                logger.debug("Sync store file not found; starting empty: %s", self._path)
                self._state = SyncState()
                return

            try:
                raw = self._path.read_text(encoding="utf-8")
                self._state = SyncState.model_validate_json(raw)
            except (OSError, ValidationError) as exc:
                logger.warning("Failed to read sync store %s: %s", self._path, exc)
                self._state = SyncState()
                return

            logger.debug(
                "Loaded sync store %s (%d exams, %d lessons, %d events)",
                self._path,
                len(self._state.exams),
                len(self._state.lessons),
                len(self._state.events),
            )

    def _persist(self, state: SyncState) -> None:
        """Write state atomically. Called with the lock held."""
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
            ) as tf:
                tmp_path = Path(tf.name)
                tf.write(state.model_dump_json(indent=2))
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Failed to persist sync store to %s: %s", self._path, exc)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink(missing_ok=True)
            raise

    def _commit(self, update: dict[str, Any]) -> None:
        """Persist the current state with update applied, then adopt it. Called with the lock held."""
        state = self._state.model_copy(update=update)
        self._persist(state)
        self._state = state

    def snapshot(self) -> SyncState:
        """Return a deep copy of the stored state."""
        with self._lock:
            return self._state.model_copy(deep=True)

    def read_lesson_snapshot(self) -> list[TimetableLesson]:
        with self._lock:
            return list(self._state.lessons)

    def read_cache_headers(self) -> CacheHeaders:
        with self._lock:
            return self._state.cache_headers.model_copy()

    def replace_sync_snapshot(
        self,
        exams: Sequence[Exam],
        lessons: Sequence[TimetableLesson],
        events: Sequence[SchoolEvent],
        cache_headers: CacheHeaders,
    ) -> None:
        """Replace all synced collections and the cache headers in one write."""
        with self._lock:
            self._commit(_snapshot_update(exams, lessons, events, cache_headers))

    def save_cache_headers(self, headers: CacheHeaders) -> None:
        with self._lock:
            self._commit({"cache_headers": headers})

    def append_timetable_changes(self, changes: Sequence[TimetableChangeEntry]) -> None:
        if not changes:
            return
        with self._lock:
            self._commit(
                {"timetable_changes": merge_timetable_changes(changes, self._state.timetable_changes)}
            )
            logger.info(
                "Recorded %d timetable changes (%d in history)",
                len(changes),
                len(self._state.timetable_changes),
            )

    def mark_sync_success(self, summary: str, at_epoch_millis: int, diagnostics: SyncDiagnostics) -> None:
        """Record a successful sync and clear the last error."""
        with self._lock:
            self._commit(_success_update(summary, at_epoch_millis, diagnostics))

    def mark_sync_error(self, error: str, diagnostics: SyncDiagnostics) -> None:
        """Record a failed sync; the last success stays untouched."""
        with self._lock:
            self._commit(_error_update(error, diagnostics))

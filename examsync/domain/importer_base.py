"""Shared plumbing for the exam, timetable and school event importers."""

from __future__ import annotations

import datetime
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Callable, Generic, Optional, TypeVar

from examsync.calendar.event_extractor import (
    RANGE_POLICY,
    ExtractionPolicy,
    IntermediateEvent,
    extract_events,
)
from examsync.core.http_client import HttpIcalTextSource, IcalTextSource
from examsync.core.timezone_utils import get_zone, now_utc
from examsync.core.url_security import normalize_and_validate_ical_url

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")
RecordT = TypeVar("RecordT")

_WHITESPACE_RUN = re.compile(r"\s+")


def stable_id(prefix: str, event: IntermediateEvent) -> str:
    """Derive a record id that survives re-imports of the same feed.

    The seed is the UID when present, else ``summary|start|end|location``.
    Whitespace runs become ``_``, so ``"Mathe Test"`` seeds ``Mathe_Test``.
    """
    if event.uid and event.uid.strip():
        seed = event.uid
    else:
        end = event.ends_at_epoch_millis if event.ends_at is not None else ""
        seed = f"{event.summary}|{event.starts_at_epoch_millis}|{end}|{event.location or ''}"
    return _WHITESPACE_RUN.sub("_", f"{prefix}:{seed}")


def dedupe_by_id(records: Iterable[RecordT], key: Callable[[RecordT], str]) -> list[RecordT]:
    """Drop records whose id was already seen; the first occurrence wins."""
    seen: set[str] = set()
    unique: list[RecordT] = []
    for record in records:
        record_id = key(record)
        if record_id in seen:
            logger.debug("Skipping duplicate record id %s", record_id)
            continue
        seen.add(record_id)
        unique.append(record)
    return unique


def clean_optional_text(value: Optional[str], limit: int) -> Optional[str]:
    """Strip value, map blank to None and truncate to limit characters."""
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        return None
    return stripped[:limit]


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RUN.sub(" ", value).strip()


class IcalImporter(ABC, Generic[ResultT]):
    """Fetch, extract and map one iCal feed into a typed import result.

    Subclasses choose the extraction policy and implement build_result();
    import_from_raw() is pure apart from reading the clock when now is omitted.
    """

    policy: ExtractionPolicy = RANGE_POLICY

    def __init__(
        self,
        text_source: Optional[IcalTextSource] = None,
        zone: Optional[datetime.tzinfo] = None,
    ) -> None:
        self._text_source = text_source
        self.zone = zone or get_zone()

    async def import_from_url(self, url: str) -> ResultT:
        """Validate url, download it and import the body.

        Raises:
            IcalUrlValidationError: url violates the link policy
            IcalFetchError: download failed
        """
        normalized_url = normalize_and_validate_ical_url(url)
        raw = await self._fetch(normalized_url)
        return self.import_from_raw(raw)

    async def _fetch(self, url: str) -> str:
        if self._text_source is not None:
            return await self._text_source.fetch(url)
        async with HttpIcalTextSource() as source:
            return await source.fetch(url)

    def import_from_raw(self, raw: str, now: Optional[datetime.datetime] = None) -> ResultT:
        """Import already downloaded calendar text."""
        current = now or now_utc()
        events = extract_events(raw, self.policy, default_zone=self.zone)
        return self.build_result(events, current)

    @abstractmethod
    def build_result(self, events: list[IntermediateEvent], now: datetime.datetime) -> ResultT:
        """Filter, classify and map extracted events."""

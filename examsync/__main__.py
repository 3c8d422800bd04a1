"""Command-line entry for examsync.

Subcommands:
  sync URL        download a feed, update the local state and report changes
  parse FILE      import a local .ics file and print what would be imported
  collisions      list exams that overlap lessons or events in the stored state
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config_loader import Config, load_config
from .core.errors import IcalSyncError, should_retry_sync, to_sync_error_message
from .core.timezone_utils import from_epoch_millis, get_zone
from .domain.collision_detector import collisions_by_exam, detect_exam_collisions
from .domain.event_importer import SchoolEventImporter
from .domain.exam_importer import ExamImporter
from .domain.lesson_importer import TimetableImporter
from .domain.store import JsonSyncStore
from .domain.sync_engine import IcalSyncEngine
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_RETRYABLE = 2


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the examsync CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="examsync",
        description="ExamSync - import exams, lessons and school events from school iCal feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  examsync sync webcal://schulnetz.example.ch/ical/abc.ics
  examsync parse ~/Downloads/stundenplan.ics
  examsync collisions --state ~/.local/share/examsync/state.json
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", metavar="PATH", help="YAML config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync an iCal link into the local state")
    sync_parser.add_argument("url", nargs="?", help="iCal link (default: ical_url from config)")
    sync_parser.add_argument("--state", metavar="PATH", help="State file (default from config)")
    sync_parser.add_argument("--no-events", action="store_true", help="Skip school event import")

    parse_parser = subparsers.add_parser("parse", help="Import a local .ics file without storing")
    parse_parser.add_argument("file", help="Path to an .ics file")

    collisions_parser = subparsers.add_parser("collisions", help="Show exam collisions")
    collisions_parser.add_argument("--state", metavar="PATH", help="State file (default from config)")

    return parser


def _format_time(epoch_millis: int, config: Config) -> str:
    return from_epoch_millis(epoch_millis, get_zone(config.school_timezone)).strftime(
        "%a %d.%m.%Y %H:%M"
    )


def _run_sync(args: argparse.Namespace, config: Config) -> int:
    url = args.url or config.ical_url
    if not url:
        print("Kein iCal-Link angegeben (Argument URL oder ical_url in der Konfiguration).")
        return EXIT_FAILURE

    store = JsonSyncStore(args.state or config.state_path)
    engine = IcalSyncEngine(store, config=config)
    import_events = False if args.no_events else None

    try:
        result = asyncio.run(engine.sync_from_url(url, import_events=import_events))
    except (IcalSyncError, OSError) as exc:
        print(to_sync_error_message(exc))
        return EXIT_RETRYABLE if should_retry_sync(exc) else EXIT_FAILURE

    print(result.summary_text())
    notification = result.notification_text()
    if notification:
        print(notification)
    return EXIT_OK


def _run_parse(args: argparse.Namespace, config: Config) -> int:
    path = Path(args.file).expanduser()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Datei kann nicht gelesen werden: {exc}")
        return EXIT_FAILURE

    zone = get_zone(config.school_timezone)
    exam_result = ExamImporter(zone=zone).import_from_raw(raw)
    lesson_result = TimetableImporter(zone=zone, window_days=config.lesson_window_days).import_from_raw(raw)
    event_result = SchoolEventImporter(zone=zone, window_days=config.event_window_days).import_from_raw(raw)

    print(exam_result.message)
    for exam in exam_result.exams:
        subject = f"[{exam.subject}] " if exam.subject else ""
        print(f"  {_format_time(exam.starts_at_epoch_millis, config)}  {subject}{exam.title}")

    print(lesson_result.message)
    moved = sum(1 for lesson in lesson_result.lessons if lesson.is_moved)
    room_changed = sum(1 for lesson in lesson_result.lessons if lesson.is_location_changed)
    if lesson_result.lessons:
        print(f"  davon verschoben: {moved}, Raumwechsel: {room_changed}")

    print(event_result.message)
    for event in event_result.events:
        print(f"  {_format_time(event.starts_at_epoch_millis, config)}  [{event.type.value}] {event.title}")
    return EXIT_OK


def _run_collisions(args: argparse.Namespace, config: Config) -> int:
    state = JsonSyncStore(args.state or config.state_path).snapshot()
    collisions = detect_exam_collisions(
        state.exams, state.lessons, state.events, get_zone(config.school_timezone)
    )
    if not collisions:
        print("Keine Kollisionen gefunden.")
        return EXIT_OK

    grouped = collisions_by_exam(collisions)
    for entries in grouped.values():
        first = entries[0]
        print(f"{_format_time(first.exam_starts_at_epoch_millis, config)}  {first.exam_title}")
        for collision in entries:
            kind = "Lektion" if collision.source.value == "LESSON" else "Event"
            print(f"  {kind}: {collision.source_title}")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Run the examsync CLI and return the process exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Konfiguration ungültig: {exc}")
        return EXIT_FAILURE

    configure_logging(debug_mode=args.debug, level_name=config.log_level)
    logger.debug("Running command %s", args.command)

    if args.command == "sync":
        return _run_sync(args, config)
    if args.command == "parse":
        return _run_parse(args, config)
    return _run_collisions(args, config)


if __name__ == "__main__":
    sys.exit(main())

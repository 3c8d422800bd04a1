"""Logical-line handling for iCalendar text.

RFC 5545 folds long content lines: a physical line that starts with a single
space or tab continues the previous line. unfold_lines() undoes that folding and
parse_property_line() splits one logical line into name, parameters and value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

FOLD_PREFIXES = (" ", "\t")


@dataclass(frozen=True)
class IcsProperty:
    """One parsed content line, e.g. ``DTSTART;TZID=Europe/Zurich:20250310T080000``."""

    key: str
    value: str
    params: dict[str, str] = field(default_factory=dict)


def unfold_lines(raw: str) -> list[str]:
    """Normalize line endings and join folded continuation lines.

    Args:
        raw: Calendar text with arbitrary (\\n or \\r\\n) line endings

    Returns:
        Logical lines in input order. Empty input yields an empty list.

    Examples:
        >>> unfold_lines("DESCRIPTION:Lange\\r\\n  Beschreibung\\r\\nEND:VEVENT")
        ['DESCRIPTION:Lange Beschreibung', 'END:VEVENT']
    """
    if not raw:
        return []

    output: list[str] = []
    for line in raw.replace("\r\n", "\n").split("\n"):
        if line.startswith(FOLD_PREFIXES) and output:
            output[-1] += line[1:]
        else:
            output.append(line)
    return output


def parse_params(property_part: str) -> dict[str, str]:
    """Parse the ``;KEY=value`` list that follows a property name.

    Fragments without ``=`` or with an empty key are skipped.
    """
    params: dict[str, str] = {}
    for fragment in property_part.split(";")[1:]:
        idx = fragment.find("=")
        if idx <= 0:
            continue
        params[fragment[:idx].upper()] = fragment[idx + 1 :]
    return params


def parse_property_line(line: str) -> Optional[IcsProperty]:
    """Split a logical line at its first colon.

    Returns None for lines without a colon or with the colon at position 0;
    callers skip those lines.
    """
    separator = line.find(":")
    if separator <= 0:
        return None

    property_part = line[:separator]
    key = property_part.split(";", 1)[0].upper()
    return IcsProperty(key=key, value=line[separator + 1 :], params=parse_params(property_part))

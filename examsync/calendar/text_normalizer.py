"""Text clean-up for iCal property values."""

from __future__ import annotations

import re
from typing import Optional, Protocol


def unescape_ical_text(value: Optional[str]) -> str:
    """Undo iCal TEXT escaping and strip surrounding whitespace.

    Examples:
        >>> unescape_ical_text("Aula\\\\, Trakt B")
        'Aula, Trakt B'
    """
    if not value:
        return ""
    return (
        value.replace("\\n", "\n")
        .replace("\\N", "\n")
        .replace("\\,", ",")
        .replace("\\;", ";")
        .replace("\\\\", "\\")
        .strip()
    )


class TextNormalizer(Protocol):
    """Pluggable clean-up applied to titles, locations and descriptions."""

    def normalize(self, text: str) -> str: ...


# Longer spellings first so "pruefungen" is not consumed as "pruefung" + "en".
GERMAN_WORD_FIXES: tuple[tuple[str, str], ...] = (
    ("nachpruefungen", "Nachprüfungen"),
    ("nachpruefung", "Nachprüfung"),
    ("pruefungen", "Prüfungen"),
    ("pruefung", "Prüfung"),
    ("stundenplaene", "Stundenpläne"),
    ("stundenplan", "Stundenplan"),
    ("ueber", "über"),
)


class GermanWordNormalizer:
    """Restore umlauts in ASCII-transliterated German words.

    schulNetz feeds write "Pruefung" for "Prüfung". Whole words are replaced
    case-insensitively; a match starting with an uppercase letter gets the
    capitalized replacement, otherwise the lowercase one.
    """

    def __init__(self, fixes: tuple[tuple[str, str], ...] = GERMAN_WORD_FIXES) -> None:
        self._rules = [
            (re.compile(rf"\b{re.escape(source)}\b", re.IGNORECASE), replacement)
            for source, replacement in fixes
        ]

    def normalize(self, text: str) -> str:
        for pattern, replacement in self._rules:
            text = pattern.sub(lambda match, r=replacement: _match_case(match.group(0), r), text)
        return text


def _match_case(matched: str, replacement: str) -> str:
    if matched[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement.lower()


_default_normalizer = GermanWordNormalizer()


def normalize_german_words(text: str) -> str:
    """Apply the default GermanWordNormalizer."""
    return _default_normalizer.normalize(text)

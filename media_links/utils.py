"""Utility helpers for name lists and performer-name parsing."""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

PAREN_PATTERN = re.compile(r"\([^)]*\)")
WHITESPACE_PATTERN = re.compile(r"\s+")


def unique_names(names: Iterable[str]) -> List[str]:
    """Strip names, drop blanks and duplicates, keep first-seen order."""
    seen = set()
    result: List[str] = []
    for name in names:
        cleaned = name.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def split_names(value: str) -> List[str]:
    """Split a comma-separated performer field into a clean list."""
    if not value:
        return []
    return unique_names(value.split(","))


def parse_performer_name(performer: str) -> Tuple[str, str]:
    """Return ``(first, last)`` for the first performer packed into ``performer``.

    "Yui Hatano (葉月ゆい)" -> ("Yui", "Hatano"); a single-part name is used for
    both halves. Empty strings come back when nothing usable remains.
    """
    if not performer:
        return "", ""
    cleaned = PAREN_PATTERN.sub("", performer).strip()
    first_performer = cleaned.split(",")[0].strip()
    parts = [part for part in WHITESPACE_PATTERN.split(first_performer) if part]
    if not parts:
        return "", ""
    return parts[0], parts[-1]

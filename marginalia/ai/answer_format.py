"""Presentation rules for generated answers."""
from __future__ import annotations

import re

_BLANK_LINE = re.compile(r"\n\s*\n")


def paragraphs(raw: str) -> list[str]:
    """Split on blank lines and collapse single newlines inside each paragraph."""

    chunks = _BLANK_LINE.split(raw.replace("\r\n", "\n").strip())
    result = []
    for chunk in chunks:
        collapsed = " ".join(line.strip() for line in chunk.split("\n") if line.strip())
        if collapsed:
            result.append(collapsed)
    return result


def format_answer(raw: str) -> str:
    return "\n\n".join(paragraphs(raw))


def needs_columns(formatted: str, char_limit: int = 1000, line_limit: int = 15) -> bool:
    return len(formatted) > char_limit or len(formatted.split("\n")) > line_limit


def split_columns(formatted: str, char_limit: int = 1000, line_limit: int = 15) -> list[str]:
    """Return one column, or two split at the paragraph boundary nearest the midpoint.

    A long answer made of a single paragraph has no boundary to split on and
    stays in one column.
    """

    parts = formatted.split("\n\n") if formatted else []
    if len(parts) < 2 or not needs_columns(formatted, char_limit, line_limit):
        return [formatted]

    midpoint = len(formatted) / 2
    best_index, best_distance = 1, None
    offset = 0
    for index, part in enumerate(parts[:-1], start=1):
        offset += len(part) + (2 if index > 1 else 0)
        distance = abs(offset - midpoint)
        if best_distance is None or distance < best_distance:
            best_index, best_distance = index, distance
    return ["\n\n".join(parts[:best_index]), "\n\n".join(parts[best_index:])]

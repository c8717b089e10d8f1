"""Normalize raw editor change notifications into canonical text events."""
from __future__ import annotations

from dataclasses import dataclass

TERMINAL_PUNCTUATION = ".!?"


@dataclass(frozen=True)
class TextChange:
    """The most recent edit, in the shape ``QTextDocument.contentsChange`` reports it."""

    position: int
    removed: int = 0
    added: int = 0

    @property
    def is_insertion(self) -> bool:
        return self.added > self.removed


@dataclass(frozen=True)
class TextEvent:
    text: str
    cursor: int
    inserted: str
    char_before_cursor: str
    line_start: int
    line_fragment: str
    sentence_fragment: str
    is_insertion: bool

    @property
    def typed_question_mark(self) -> bool:
        return self.is_insertion and self.char_before_cursor == "?"


def normalize(text: str, cursor: int, change: TextChange | None = None) -> TextEvent:
    """Build a :class:`TextEvent` for ``cursor`` scanning only the current line."""

    cursor = max(0, min(cursor, len(text)))
    change = change or TextChange(cursor)

    inserted = ""
    if change.is_insertion:
        start = max(0, min(change.position, len(text)))
        inserted = text[start : start + change.added]

    line_start = text.rfind("\n", 0, cursor) + 1
    line_fragment = text[line_start:cursor]

    return TextEvent(
        text=text,
        cursor=cursor,
        inserted=inserted,
        char_before_cursor=text[cursor - 1] if cursor > 0 else "",
        line_start=line_start,
        line_fragment=line_fragment,
        sentence_fragment=_sentence_tail(line_fragment),
        is_insertion=change.is_insertion,
    )


def _sentence_tail(line: str) -> str:
    # Ignore punctuation in the final position so "Why?" yields the whole sentence.
    body = line.rstrip()
    search_end = len(body) - 1 if body and body[-1] in TERMINAL_PUNCTUATION else len(body)
    cut = max(body.rfind(mark, 0, search_end) for mark in TERMINAL_PUNCTUATION)
    return line[cut + 1 :].lstrip()


def shift_range(start: int, end: int, change: TextChange) -> tuple[int, int]:
    """Map the half-open range ``[start, end)`` through ``change``.

    Edits after the range leave it alone, edits before it shift it, and edits
    overlapping it stretch or shrink its end. The range never inverts.
    """

    delta = change.added - change.removed
    edit_end = change.position + change.removed
    if change.position >= end:
        return start, end
    if edit_end <= start:
        return start + delta, end + delta
    new_start = min(start, change.position)
    new_end = max(new_start, end + delta)
    return new_start, new_end

"""The editor interface the assistance engine talks to."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Bounds:
    top: float
    left: float
    height: float


class EditorSurface(Protocol):
    def get_text(self) -> str: ...

    def get_selection(self) -> tuple[int, int] | None: ...

    def get_bounds(self, index: int) -> Bounds: ...

    def insert_marked_span(self, start: int, length: int, marker_id: str) -> None: ...

    def set_selection(self, index: int, length: int = 0) -> None: ...

    def marker_range(self, marker_id: str) -> tuple[int, int] | None: ...


def preserved_cursor(cursor: int, start: int, length: int, added: int = 0) -> int:
    """Where the cursor belongs after tagging ``[start, start + length)``.

    ``added`` counts characters the tagging inserted into the document (zero
    when the marker is pure formatting). A cursor after the range keeps its
    absolute position plus anything inserted before it, a cursor inside the
    range lands right after it, and a cursor before it does not move.
    """

    end = start + length
    if cursor >= end:
        return cursor + added
    if cursor > start:
        return end + added
    return cursor

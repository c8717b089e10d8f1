"""Error taxonomy for the inline assistance engine.

None of these are fatal: the editor keeps accepting input whatever happens here.
Generation failures are shown inline, position failures fall back to a default
top offset and marking failures simply leave the span without a re-entry marker.
"""
from __future__ import annotations


class MarginaliaError(Exception):
    """Base class for engine errors."""


class GenerationError(MarginaliaError):
    """The generation backend failed (transport or upstream error)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PositionError(MarginaliaError):
    """Screen bounds for an annotation could not be resolved."""


class MarkingError(MarginaliaError):
    """The editor could not tag a span with a marker."""

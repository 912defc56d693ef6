"""
Error taxonomy for the analytics engine.

Propagation policy:
    - Contract violations (bad ranges, unsupported horizons) fail fast.
    - Malformed individual records are absorbed by the adapter and reported.
    - Sparse data degrades to well-defined empty or neutral outputs; an error
      is raised only when nothing at all can be computed.
"""

from typing import Optional


class PulseError(Exception):
    """Base class for all engine errors."""


class InvalidRangeError(PulseError, ValueError):
    """
    Malformed date range (start after end) or a horizon outside supported
    bounds (negative period count, unsupported forecast horizon).
    """


class InsufficientDataError(PulseError):
    """
    No computation is possible at all, e.g. scoring an entity that has no
    events in the feed, or forecasting from an empty history.
    """

    def __init__(self, message: str, subject: Optional[str] = None):
        super().__init__(message)
        self.subject = subject


class DataShapeError(PulseError, ValueError):
    """A raw record is missing a required identity field."""

    def __init__(self, message: str, field: str, index: Optional[int] = None):
        super().__init__(message)
        self.field = field
        self.index = index

"""
Event data models for the analytics engine.

Defines the strict event schema produced by the event feed adapter, the date
range input, metric history points, and the normalization report that lists
records skipped at the boundary.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ConfigDict, Field, field_validator

from pulse.models.base import SchemaModel
from pulse.models.enums import EventType
from pulse.utils.timeutils import days_between, ensure_utc, require_valid_range

Scalar = Union[str, int, float, bool, None]


class Event(SchemaModel):
    """
    Normalized, immutable event record.

    Events are owned by the external event store; the engine treats them as
    read-only input. Heterogeneous raw documents are mapped into this shape
    once by ``EventFeedAdapter``; engine code never re-implements fallback
    field lookups.

    Attributes:
        entity_id: Entity (user) the event belongs to
        type: Canonical event type
        timestamp: When the event happened (UTC)
        attributes: Scalar event attributes (token counts, costs, flags...)
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(min_length=1, description="Entity (user) identifier")
    type: EventType = Field(description="Canonical event type")
    timestamp: datetime = Field(description="Event time (UTC)")
    attributes: dict[str, Scalar] = Field(
        default_factory=dict, description="Scalar event attributes"
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store every timestamp as timezone-aware UTC."""
        return ensure_utc(v)

    @field_validator("attributes", mode="before")
    @classmethod
    def default_attributes(cls, v: Any) -> Any:
        """Missing or null attributes become an empty mapping."""
        return {} if v is None else v

    def number(self, key: str, default: float = 0.0) -> float:
        """Numeric attribute value; absent or non-numeric values read as default."""
        value = self.attributes.get(key)
        if isinstance(value, bool) or value is None:
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def flag(self, key: str) -> Optional[bool]:
        """Boolean attribute, or None when absent."""
        value = self.attributes.get(key)
        if value is None:
            return None
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes"}
        return bool(value)


class DateRange(SchemaModel):
    """
    Inclusive date range input.

    Construct through ``DateRange.between`` to validate ordering eagerly;
    every engine entry point also validates with ``require_valid_range``.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize_bounds(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "DateRange":
        """
        Build a validated range.

        Raises:
            InvalidRangeError: If start is after end
        """
        require_valid_range(start, end)
        return cls(start=start, end=end)

    def validate_order(self) -> "DateRange":
        require_valid_range(self.start, self.end)
        return self

    def contains(self, ts: datetime) -> bool:
        """Inclusive membership test."""
        return self.start <= ensure_utc(ts) <= self.end

    @property
    def days(self) -> float:
        return days_between(self.start, self.end)


class MetricPoint(SchemaModel):
    """One observation in a metric history series."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    value: float

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class SkippedRecord(SchemaModel):
    """
    A raw record the adapter could not normalize.

    Attributes:
        index: Position of the record in the input batch
        field: Required field that was missing or unparseable
        reason: Human-readable reason
    """

    index: int = Field(ge=0)
    field: str
    reason: str


class NormalizationReport(SchemaModel):
    """
    Outcome of normalizing one batch of raw records.

    Attributes:
        source: Adapter source name
        total_records: Records received
        accepted_records: Records turned into events
        skipped: Records skipped with reasons
    """

    source: str
    total_records: int = Field(ge=0)
    accepted_records: int = Field(ge=0)
    skipped: list[SkippedRecord] = Field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def acceptance_rate(self) -> float:
        return self.accepted_records / self.total_records if self.total_records else 1.0

"""
Metric aggregation over event feeds.

Sums numeric attributes over an inclusive date range, optionally grouped by a
categorical attribute. Every dashboard total (tokens, costs, counts) goes
through ``aggregate`` so screens share one code path.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from functools import reduce
from typing import NamedTuple, Optional

import structlog

from pulse.config import EngineConfig
from pulse.models.analytics import AggregateResult, TokenUsage
from pulse.models.enums import EventType
from pulse.models.events import Event
from pulse.utils.timeutils import ensure_utc, require_valid_range

logger = structlog.get_logger()

UNKNOWN_GROUP = "unknown"


class _Accumulator(NamedTuple):
    """Immutable fold state."""

    total: float
    count: int
    groups: tuple[tuple[str, float], ...]


def _group_key(event: Event, group_by: str) -> str:
    value = event.attributes.get(group_by)
    if value is None or (isinstance(value, str) and not value.strip()):
        return UNKNOWN_GROUP
    if isinstance(value, EventType):
        return value.value
    return str(value)


class MetricAggregator:
    """
    Sums numeric event attributes over date ranges.

    Aggregation is a fold over the event sequence: each step returns a new
    accumulator, the input is never mutated.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="metric_aggregator")

    def aggregate(
        self,
        events: Iterable[Event],
        start: datetime,
        end: datetime,
        value_fields: Sequence[str],
        group_by: Optional[str] = None,
        types: Optional[Iterable[EventType]] = None,
    ) -> AggregateResult:
        """
        Sum value_fields over events within [start, end].

        Args:
            events: Event feed
            start: Range start (inclusive)
            end: Range end (inclusive)
            value_fields: Attribute names summed per event; absent or
                non-numeric values count as 0
            group_by: Optional attribute to group totals by ("unknown" when
                an event lacks it)
            types: Optional event types to restrict to

        Returns:
            AggregateResult with total, matching event count and group totals

        Raises:
            InvalidRangeError: If start is after end
        """
        require_valid_range(start, end)
        start, end = ensure_utc(start), ensure_utc(end)
        type_filter = frozenset(types) if types is not None else None

        def in_scope(event: Event) -> bool:
            if not start <= event.timestamp <= end:
                return False
            return type_filter is None or event.type in type_filter

        def step(acc: _Accumulator, event: Event) -> _Accumulator:
            value = sum(event.number(field) for field in value_fields)
            groups = acc.groups
            if group_by is not None:
                key = _group_key(event, group_by)
                current = dict(groups)
                current[key] = current.get(key, 0.0) + value
                groups = tuple(current.items())
            return _Accumulator(acc.total + value, acc.count + 1, groups)

        result = reduce(step, filter(in_scope, events), _Accumulator(0.0, 0, ()))

        return AggregateResult(
            total=result.total,
            count=result.count,
            by_group=dict(result.groups) if group_by is not None else None,
        )

    def count(
        self,
        events: Iterable[Event],
        start: datetime,
        end: datetime,
        types: Optional[Iterable[EventType]] = None,
        predicate: Optional[Callable[[Event], bool]] = None,
    ) -> int:
        """Number of events in [start, end] matching types and predicate."""
        if predicate is not None:
            events = [e for e in events if predicate(e)]
        return self.aggregate(events, start, end, value_fields=(), types=types).count

    def token_usage(
        self,
        events: Iterable[Event],
        start: datetime,
        end: datetime,
        types: Optional[Iterable[EventType]] = None,
    ) -> TokenUsage:
        """
        Roll up AI token and cost usage.

        Args:
            events: Event feed
            start: Range start (inclusive)
            end: Range end (inclusive)
            types: Event types carrying usage; defaults to token burns and AI jobs

        Returns:
            TokenUsage with input/output tokens, cost and per-model token totals
        """
        events = list(events)
        types = tuple(types) if types is not None else (EventType.TOKEN_BURN, EventType.AI_JOB)

        tokens_in = self.aggregate(events, start, end, ("tokens_in",), types=types)
        tokens_out = self.aggregate(events, start, end, ("tokens_out",), types=types)
        cost = self.aggregate(events, start, end, ("cost_usd",), types=types)
        by_model = self.aggregate(
            events, start, end, ("tokens_in", "tokens_out"), group_by="model", types=types
        )

        usage = TokenUsage(
            tokens_in=tokens_in.total,
            tokens_out=tokens_out.total,
            total_tokens=tokens_in.total + tokens_out.total,
            cost=round(cost.total, 6),
            event_count=tokens_in.count,
            by_model=by_model.by_group or {},
        )
        self.logger.debug(
            "token_usage_aggregated",
            total_tokens=usage.total_tokens,
            cost=usage.cost,
            models=len(usage.by_model),
        )
        return usage

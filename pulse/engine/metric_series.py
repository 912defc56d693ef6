"""
Daily metric series.

Builds one value per UTC calendar day for each monitored dashboard metric.
The series feed the Baseline Estimator (history), the Anomaly Detector
(current value) and the Forecast Projector.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import structlog

from pulse.config import EngineConfig
from pulse.engine.aggregator import MetricAggregator
from pulse.models.enums import EventType
from pulse.models.events import Event, MetricPoint
from pulse.utils.timeutils import ensure_utc, iter_days, require_valid_range, start_of_day

logger = structlog.get_logger()

FILE_CONVERSION_SUCCESS_RATE = "file_conversion_success_rate"
EXPORT_SUCCESS_RATE = "export_success_rate"
P95_GENERATION_TIME = "p95_generation_time"
DAILY_TOKEN_COST = "daily_token_cost"
DAILY_MAPS_CREATED = "daily_maps_created"
ERROR_RATE = "error_rate"
JOB_FAILURE_RATE = "job_failure_rate"
DAILY_ACTIVE_USERS = "daily_active_users"

MONITORED_METRICS = (
    FILE_CONVERSION_SUCCESS_RATE,
    EXPORT_SUCCESS_RATE,
    P95_GENERATION_TIME,
    DAILY_TOKEN_COST,
    DAILY_MAPS_CREATED,
    ERROR_RATE,
    JOB_FAILURE_RATE,
    DAILY_ACTIVE_USERS,
)


def success_rate(events: list[Event], default: float = 100.0) -> float:
    """
    Percentage of events flagged successful.

    Events without an outcome flag count as successful. A day with no events
    reports the default (100%), so a quiet day never reads as an outage.
    """
    if not events:
        return default
    failures = sum(1 for e in events if e.flag("success") is False)
    return (len(events) - failures) / len(events) * 100.0


def percentile_95(values: list[float]) -> float:
    """Nearest-rank style p95: sorted[floor(n * 0.95)], 0 when empty."""
    if not values:
        return 0.0
    ordered = np.sort(np.asarray(values, dtype=float))
    index = min(int(np.floor(len(ordered) * 0.95)), len(ordered) - 1)
    return float(ordered[index])


class DailyMetricSeries:
    """
    Computes per-day values of the monitored metrics from an event feed.

    Cost and volume totals go through the shared MetricAggregator so the
    series agree with every other token and cost rollup.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        aggregator: Optional[MetricAggregator] = None,
    ):
        self.config = config or EngineConfig()
        self.aggregator = aggregator or MetricAggregator(self.config)
        self.logger = logger.bind(component="daily_metric_series")

    def _bucket(self, events: Iterable[Event]) -> dict[datetime, list[Event]]:
        buckets: dict[datetime, list[Event]] = defaultdict(list)
        for event in events:
            buckets[start_of_day(event.timestamp)].append(event)
        return buckets

    def day_values(
        self, events: list[Event], day: Optional[datetime] = None
    ) -> dict[str, float]:
        """
        Values of every monitored metric for one day's events.

        Args:
            events: Events of a single day
            day: UTC midnight of the day; defaults to the span of the events
        """
        if day is not None:
            day_start, day_end = day, day + timedelta(days=1) - timedelta(microseconds=1)
        elif events:
            day_start = min(e.timestamp for e in events)
            day_end = max(e.timestamp for e in events)
        else:
            day_start = day_end = None

        by_type: dict[EventType, list[Event]] = defaultdict(list)
        for event in events:
            by_type[event.type].append(event)

        generation_times = [
            e.number("generation_time_ms")
            for e in by_type[EventType.CREATION] + by_type[EventType.AI_JOB]
            if "generation_time_ms" in e.attributes
        ]
        if day_start is None:
            cost, maps_created = 0.0, 0
        else:
            cost = self.aggregator.token_usage(events, day_start, day_end).cost
            maps_created = self.aggregator.count(
                events, day_start, day_end, types=(EventType.CREATION,)
            )
        errors = len(by_type[EventType.ERROR])
        total = len(events)
        active = {e.entity_id for e in events if e.type not in (EventType.ERROR, EventType.OTHER)}

        return {
            FILE_CONVERSION_SUCCESS_RATE: success_rate(by_type[EventType.FILE_CONVERSION]),
            EXPORT_SUCCESS_RATE: success_rate(by_type[EventType.EXPORT]),
            P95_GENERATION_TIME: percentile_95(generation_times),
            DAILY_TOKEN_COST: cost,
            DAILY_MAPS_CREATED: float(maps_created),
            ERROR_RATE: errors / total * 100.0 if total else 0.0,
            JOB_FAILURE_RATE: 100.0 - success_rate(by_type[EventType.AI_JOB]),
            DAILY_ACTIVE_USERS: float(len(active)),
        }

    def build(
        self,
        events: Iterable[Event],
        start: datetime,
        end: datetime,
    ) -> dict[str, list[MetricPoint]]:
        """
        Daily series for every monitored metric over [start, end].

        Each point is stamped at UTC midnight of its day; days without events
        still produce a point.

        Raises:
            InvalidRangeError: If start is after end
        """
        require_valid_range(start, end)
        start, end = ensure_utc(start), ensure_utc(end)
        buckets = self._bucket(e for e in events if start <= e.timestamp <= end)

        series: dict[str, list[MetricPoint]] = {metric: [] for metric in MONITORED_METRICS}
        days = 0
        for day in iter_days(start, end):
            days += 1
            for metric, value in self.day_values(buckets.get(day, []), day).items():
                series[metric].append(MetricPoint(timestamp=day, value=value))

        self.logger.debug("daily_series_built", days=days, metrics=len(series))
        return series

    @staticmethod
    def split_current(
        series: dict[str, list[MetricPoint]],
    ) -> tuple[dict[str, list[MetricPoint]], dict[str, float], Optional[datetime]]:
        """
        Separate the last day of each series as the current value.

        Returns:
            (history without the last day, current value per metric, instant
            the current day starts at, i.e. the baseline ``now``)
        """
        history: dict[str, list[MetricPoint]] = {}
        current: dict[str, float] = {}
        as_of: Optional[datetime] = None
        for metric, points in series.items():
            if not points:
                continue
            history[metric] = points[:-1]
            current[metric] = points[-1].value
            as_of = points[-1].timestamp
        return history, current, as_of

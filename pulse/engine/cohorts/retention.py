"""
Retention calculation.

Cohort retention curves measure, for each fixed-length period after an
entity's qualifying event, the share of the cohort that was active. Weekly
calendar retention measures week-over-week return across all active users.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from typing import Optional

import structlog

from pulse.config import EngineConfig
from pulse.errors import InvalidRangeError
from pulse.models.cohorts import RetentionCurve, RetentionPoint, WeeklyRetentionPoint
from pulse.models.enums import ACTIVITY_EVENT_TYPES, CohortName
from pulse.models.events import DateRange, Event
from pulse.utils.timeutils import require_valid_range, week_start

from .timeline import EntityTimeline

logger = structlog.get_logger()


class RetentionCalculator:
    """
    Computes cohort retention curves and weekly calendar retention.

    Period i covers [q + i*P, q + (i+1)*P) where q is the member's qualifying
    instant and P is period_days. Period 0 is 1.0 by construction.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="retention_calculator")

    def _active_in_period(self, timeline: EntityTimeline, period_index: int) -> bool:
        period = timedelta(days=self.config.period_days)
        start = timeline.qualifying_at + period * period_index
        end = start + period
        return timeline.has_any(ACTIVITY_EVENT_TYPES, start, end, end_inclusive=False)

    def calculate_retention(
        self,
        cohort_name: CohortName,
        member_ids: Iterable[str],
        max_periods: Optional[int],
        timelines: dict[str, EntityTimeline],
    ) -> Optional[RetentionCurve]:
        """
        Retention curve for one cohort.

        Args:
            cohort_name: Cohort the members belong to
            member_ids: Cohort members
            max_periods: Periods to compute after period 0 (config default when None)
            timelines: Timelines for the feed the cohort was built from

        Returns:
            RetentionCurve with max_periods + 1 points, or None when no member
            has a qualifying event

        Raises:
            InvalidRangeError: If max_periods is negative
        """
        if max_periods is None:
            max_periods = self.config.max_periods
        if max_periods < 0:
            raise InvalidRangeError(f"max_periods must be >= 0, got {max_periods}")

        members = [
            timelines[entity_id]
            for entity_id in sorted(set(member_ids))
            if entity_id in timelines and timelines[entity_id].qualifying_at is not None
        ]
        size = len(members)
        if size == 0:
            self.logger.warning("retention_empty_cohort", cohort=cohort_name.value)
            return None

        points = [
            RetentionPoint(
                cohort_name=cohort_name,
                period_index=0,
                active_count=size,
                cohort_size=size,
                retention_rate=1.0,
            )
        ]
        for period_index in range(1, max_periods + 1):
            active = sum(1 for t in members if self._active_in_period(t, period_index))
            points.append(
                RetentionPoint(
                    cohort_name=cohort_name,
                    period_index=period_index,
                    active_count=active,
                    cohort_size=size,
                    retention_rate=round(active / size, 4),
                )
            )

        self.logger.debug(
            "retention_calculated",
            cohort=cohort_name.value,
            size=size,
            periods=max_periods,
        )
        return RetentionCurve(cohort_name=cohort_name, size=size, points=points)

    def calculate_all(
        self,
        cohorts: dict[CohortName, frozenset[str]],
        max_periods: Optional[int],
        timelines: dict[str, EntityTimeline],
    ) -> list[RetentionCurve]:
        """Curves for every cohort, dropping cohorts with no measurable members."""
        curves = []
        for name, members in cohorts.items():
            curve = self.calculate_retention(name, members, max_periods, timelines)
            if curve is not None:
                curves.append(curve)
        return curves

    def calculate_weekly_retention(
        self, events: Iterable[Event], date_range: DateRange
    ) -> list[WeeklyRetentionPoint]:
        """
        Week-over-week retention across all active entities.

        Activity is bucketed by ISO calendar week (Monday start) within the
        range. A user is retained in a week when they were also active in the
        immediately preceding week; new users are those seen for the first
        time in the range.

        Raises:
            InvalidRangeError: If the range is malformed
        """
        require_valid_range(date_range.start, date_range.end)

        weekly: dict[date, set[str]] = defaultdict(set)
        for event in events:
            if event.type in ACTIVITY_EVENT_TYPES and date_range.contains(event.timestamp):
                weekly[week_start(event.timestamp)].add(event.entity_id)

        rows: list[WeeklyRetentionPoint] = []
        seen: set[str] = set()
        previous: Optional[set[str]] = None
        week = week_start(date_range.start)
        last_week = week_start(date_range.end)
        while week <= last_week:
            active = weekly.get(week, set())
            retained = active & previous if previous is not None else set()
            rate = len(retained) / len(previous) if previous else 0.0
            rows.append(
                WeeklyRetentionPoint(
                    week=week.isoformat(),
                    active_users=len(active),
                    retained_users=len(retained),
                    new_users=len(active - seen),
                    retention_rate=round(rate, 4),
                )
            )
            seen |= active
            previous = active
            week += timedelta(days=7)
        return rows

"""
Behavioral cohort builder.

Assigns entities that signed up within a window to named cohorts based on
what they did in their first week (or, for ONE_AND_DONE, over their whole
observed lifetime). Cohorts are independent predicates, not a partition: an
entity can belong to several cohorts or to none.
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Optional

import structlog

from pulse.config import EngineConfig
from pulse.models.cohorts import Cohort
from pulse.models.enums import CohortName, EventType
from pulse.models.events import DateRange, Event
from pulse.utils.timeutils import ensure_utc, require_valid_range

from .timeline import EntityTimeline, build_timelines

logger = structlog.get_logger()

CohortPredicate = Callable[[EntityTimeline, datetime, datetime], bool]


def _exporters_week1(timeline: EntityTimeline, start: datetime, end: datetime) -> bool:
    return timeline.has_any((EventType.EXPORT,), start, end)


def _editors_3plus_week1(timeline: EntityTimeline, start: datetime, end: datetime) -> bool:
    return timeline.count((EventType.EDIT,), start, end) >= 3


def _one_and_done(timeline: EntityTimeline, start: datetime, end: datetime) -> bool:
    # Lifetime predicate: the week-1 bounds are ignored.
    return (
        timeline.count((EventType.CREATION,)) == 1
        and not timeline.has_any((EventType.EDIT, EventType.EXPORT))
    )


def _collaborators_week1(timeline: EntityTimeline, start: datetime, end: datetime) -> bool:
    return timeline.has_any((EventType.COLLABORATION,), start, end)


COHORT_PREDICATES: dict[CohortName, CohortPredicate] = {
    CohortName.EXPORTERS_WEEK1: _exporters_week1,
    CohortName.EDITORS_3PLUS_WEEK1: _editors_3plus_week1,
    CohortName.ONE_AND_DONE: _one_and_done,
    CohortName.COLLABORATORS_WEEK1: _collaborators_week1,
}


class CohortBuilder:
    """
    Builds behavioral cohorts from an event feed.

    The qualifying event is an entity's earliest signup; its week-1 window is
    [signup, signup + week_window_days], inclusive on both ends.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="cohort_builder")

    def build_timelines(
        self, events: Iterable[Event], as_of: Optional[datetime] = None
    ) -> dict[str, EntityTimeline]:
        """Per-entity timelines, shared with the retention calculator."""
        return build_timelines(events, as_of=as_of)

    def week1_bounds(self, timeline: EntityTimeline) -> tuple[datetime, datetime]:
        start = timeline.qualifying_at
        return start, start + timedelta(days=self.config.week_window_days)

    def assign_entity(self, timeline: EntityTimeline) -> list[CohortName]:
        """
        Cohorts one entity belongs to.

        Returns:
            Cohort names in declaration order; empty when the entity has no
            qualifying event
        """
        if timeline.qualifying_at is None:
            return []
        start, end = self.week1_bounds(timeline)
        return [name for name, predicate in COHORT_PREDICATES.items() if predicate(timeline, start, end)]

    def build_cohorts(
        self,
        signup_window: DateRange,
        events: Iterable[Event],
        as_of: Optional[datetime] = None,
        timelines: Optional[dict[str, EntityTimeline]] = None,
    ) -> dict[CohortName, frozenset[str]]:
        """
        Assign entities that signed up within signup_window to cohorts.

        Args:
            signup_window: Inclusive range the qualifying event must fall in
            events: Event feed, in any order
            as_of: Optional cut-off for lifetime predicates
            timelines: Prebuilt timelines for the same feed (skips regrouping)

        Returns:
            Cohort name -> member ids, non-empty cohorts only

        Raises:
            InvalidRangeError: If the signup window is malformed
        """
        require_valid_range(signup_window.start, signup_window.end)
        if timelines is None:
            timelines = self.build_timelines(events, as_of=ensure_utc(as_of) if as_of else None)

        members: dict[CohortName, set[str]] = {name: set() for name in COHORT_PREDICATES}
        eligible = 0
        for timeline in timelines.values():
            if timeline.qualifying_at is None or not signup_window.contains(timeline.qualifying_at):
                continue
            eligible += 1
            for name in self.assign_entity(timeline):
                members[name].add(timeline.entity_id)

        cohorts = {}
        for name, ids in members.items():
            if not ids:
                self.logger.debug("cohort_empty_omitted", cohort=name.value)
                continue
            cohorts[name] = frozenset(ids)

        self.logger.info(
            "cohorts_built",
            eligible_entities=eligible,
            cohorts={name.value: len(ids) for name, ids in cohorts.items()},
        )
        return cohorts

    def to_models(
        self, cohorts: dict[CohortName, frozenset[str]], signup_window: DateRange
    ) -> list[Cohort]:
        """Wrap a cohort mapping into Cohort models."""
        return [
            Cohort(name=name, member_ids=ids, defined_at=signup_window)
            for name, ids in cohorts.items()
        ]

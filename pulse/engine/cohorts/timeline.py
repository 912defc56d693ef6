"""
Per-entity event timelines.

A timeline is an immutable, time-sorted snapshot of one entity's events plus
its qualifying (first signup) instant. Cohort predicates and retention periods
are evaluated against timelines rather than the raw feed.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from pulse.models.enums import EventType
from pulse.models.events import Event


class EntityTimeline(BaseModel):
    """
    Attributes:
        entity_id: Entity identifier
        qualifying_at: Earliest signup timestamp, None when the entity never signed up
        events: All events for the entity, sorted by timestamp
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str
    qualifying_at: Optional[datetime] = None
    events: tuple[Event, ...] = ()

    def count(
        self,
        types: Iterable[EventType],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        end_inclusive: bool = True,
    ) -> int:
        """Number of events of the given types within the bounds."""
        wanted = frozenset(types)
        return sum(1 for e in self._between(start, end, end_inclusive) if e.type in wanted)

    def has_any(
        self,
        types: Iterable[EventType],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        end_inclusive: bool = True,
    ) -> bool:
        wanted = frozenset(types)
        return any(e.type in wanted for e in self._between(start, end, end_inclusive))

    def _between(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        end_inclusive: bool,
    ) -> Iterator[Event]:
        for event in self.events:
            if start is not None and event.timestamp < start:
                continue
            if end is not None:
                if event.timestamp > end or (not end_inclusive and event.timestamp == end):
                    break
            yield event

    @property
    def last_event_at(self) -> Optional[datetime]:
        return self.events[-1].timestamp if self.events else None


def build_timelines(
    events: Iterable[Event], as_of: Optional[datetime] = None
) -> dict[str, EntityTimeline]:
    """
    Group events into per-entity timelines.

    Args:
        events: Event feed, in any order
        as_of: Optional cut-off; events after it are ignored

    Returns:
        Entity id -> timeline, keys in sorted order
    """
    grouped: dict[str, list[Event]] = defaultdict(list)
    for event in events:
        if as_of is not None and event.timestamp > as_of:
            continue
        grouped[event.entity_id].append(event)

    timelines = {}
    for entity_id in sorted(grouped):
        ordered = tuple(sorted(grouped[entity_id], key=lambda e: (e.timestamp, e.type.value)))
        signup = next((e.timestamp for e in ordered if e.type == EventType.SIGNUP), None)
        timelines[entity_id] = EntityTimeline(
            entity_id=entity_id, qualifying_at=signup, events=ordered
        )
    return timelines

"""
Cohort and retention models.
"""

from pydantic import ConfigDict, Field

from pulse.models.base import SchemaModel
from pulse.models.enums import CohortName
from pulse.models.events import DateRange


class Cohort(SchemaModel):
    """
    A named set of entities sharing a week-1 (or lifetime) behavioral trait.

    Attributes:
        name: Cohort identifier
        member_ids: Entity ids in the cohort
        defined_at: Signup window the cohort was built for
    """

    model_config = ConfigDict(frozen=True)

    name: CohortName
    member_ids: frozenset[str]
    defined_at: DateRange

    @property
    def size(self) -> int:
        return len(self.member_ids)


class RetentionPoint(SchemaModel):
    """
    Share of a cohort active in one retention period.

    Period 0 is the qualifying period and is 1.0 by construction.
    """

    model_config = ConfigDict(frozen=True)

    cohort_name: CohortName
    period_index: int = Field(ge=0)
    active_count: int = Field(ge=0)
    cohort_size: int = Field(ge=0)
    retention_rate: float = Field(ge=0.0, le=1.0)


class RetentionCurve(SchemaModel):
    """Ordered retention points for one cohort, period 0 first."""

    cohort_name: CohortName
    size: int = Field(ge=0)
    points: list[RetentionPoint] = Field(default_factory=list)

    def rate_at(self, period_index: int) -> float:
        """Retention rate for a period, raising IndexError when not computed."""
        for point in self.points:
            if point.period_index == period_index:
                return point.retention_rate
        raise IndexError(f"period {period_index} not computed for {self.cohort_name.value}")


class WeeklyRetentionPoint(SchemaModel):
    """
    Calendar-week retention row.

    Attributes:
        week: ISO date of the Monday starting the week
        active_users: Entities with activity in the week
        retained_users: Active entities that were also active the previous week
        new_users: Active entities seen for the first time in the range
        retention_rate: retained / previous week's active (0 for the first week)
    """

    week: str
    active_users: int = Field(ge=0)
    retained_users: int = Field(ge=0)
    new_users: int = Field(ge=0)
    retention_rate: float = Field(ge=0.0, le=1.0)

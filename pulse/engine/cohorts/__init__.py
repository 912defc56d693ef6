"""Cohort building and retention."""

from .builder import COHORT_PREDICATES, CohortBuilder
from .retention import RetentionCalculator
from .timeline import EntityTimeline, build_timelines

__all__ = [
    "COHORT_PREDICATES",
    "CohortBuilder",
    "EntityTimeline",
    "RetentionCalculator",
    "build_timelines",
]

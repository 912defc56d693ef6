"""Per-entity health scoring."""

from .health_scorer import HealthScorer, round_half_up

__all__ = ["HealthScorer", "round_half_up"]

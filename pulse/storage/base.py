"""
Abstract storage interface for computed analytics.

The engine components never perform storage I/O themselves. The pipeline
reads previous health scores (for trend comparison) and optionally writes the
snapshot it produced through this interface, so the document-store client
stays outside the engine.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pulse.models.analytics import AnalyticsSnapshot, HealthScore


class SnapshotStore(ABC):
    """
    Abstract base class for snapshot persistence.

    Only "store the last computed snapshot" is required; implementations may
    keep history, but the engine never relies on it.
    """

    # =========================================================================
    # Health scores
    # =========================================================================

    @abstractmethod
    def read_previous_health_score(self, entity_id: str) -> Optional[int]:
        """
        Most recently stored health score for an entity.

        Args:
            entity_id: Entity identifier

        Returns:
            Score, or None when the entity has never been scored
        """

    @abstractmethod
    def write_health_scores(self, scores: list[HealthScore]) -> int:
        """
        Store health scores, replacing earlier scores for the same entities.

        Returns:
            Number of scores written
        """

    # =========================================================================
    # Snapshots
    # =========================================================================

    @abstractmethod
    def write_snapshot(self, snapshot: AnalyticsSnapshot) -> str:
        """
        Store a snapshot as the latest one.

        Returns:
            The snapshot id
        """

    @abstractmethod
    def read_latest_snapshot(self) -> Optional[AnalyticsSnapshot]:
        """Latest stored snapshot, or None when nothing was stored."""

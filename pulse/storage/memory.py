"""In-memory snapshot store for tests and local runs."""

from typing import Optional

import structlog

from pulse.models.analytics import AnalyticsSnapshot, HealthScore
from pulse.storage.base import SnapshotStore

logger = structlog.get_logger()


class InMemorySnapshotStore(SnapshotStore):
    """Keeps the latest score per entity and the latest snapshot in process memory."""

    def __init__(self, previous_scores: Optional[dict[str, int]] = None):
        self._scores: dict[str, int] = dict(previous_scores or {})
        self._snapshot: Optional[AnalyticsSnapshot] = None
        self.logger = logger.bind(store="memory")

    def read_previous_health_score(self, entity_id: str) -> Optional[int]:
        return self._scores.get(entity_id)

    def write_health_scores(self, scores: list[HealthScore]) -> int:
        for score in scores:
            self._scores[score.entity_id] = score.score
        self.logger.debug("health_scores_written", count=len(scores))
        return len(scores)

    def write_snapshot(self, snapshot: AnalyticsSnapshot) -> str:
        self._snapshot = snapshot
        self.logger.info("snapshot_written", snapshot_id=snapshot.snapshot_id)
        return snapshot.snapshot_id

    def read_latest_snapshot(self) -> Optional[AnalyticsSnapshot]:
        return self._snapshot

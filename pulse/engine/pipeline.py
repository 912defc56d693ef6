"""
Analytics Pipeline: one full point-in-time batch recomputation.

Flow:
    raw records -> EventFeedAdapter -> events
    events -> CohortBuilder -> cohorts -> RetentionCalculator -> curves
    events -> RetentionCalculator -> weekly calendar retention
    events -> MetricAggregator / DailyMetricSeries -> BaselineEstimator -> AnomalyDetector
    events -> HealthScorer (previous scores from the store) / ChurnRiskPredictor
    daily series -> ForecastProjector (30d / 60d / 90d)

The result is an AnalyticsSnapshot whose id is a hash of its content, so
re-running on unchanged input with the same ``now`` reproduces it exactly.
"""

import hashlib
import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional

import structlog

from pulse.adapters.event_feed_adapter import EventFeedAdapter
from pulse.config import EngineConfig
from pulse.engine.aggregator import MetricAggregator
from pulse.engine.cohorts.builder import CohortBuilder
from pulse.engine.cohorts.retention import RetentionCalculator
from pulse.engine.detection.anomaly import AnomalyDetector
from pulse.engine.detection.baseline import BaselineEstimator
from pulse.engine.metric_series import MONITORED_METRICS, DailyMetricSeries
from pulse.engine.prediction.churn_predictor import ChurnRiskPredictor
from pulse.engine.prediction.forecast import ForecastProjector
from pulse.engine.scoring.health_scorer import HealthScorer
from pulse.models.analytics import AnalyticsSnapshot, PaymentState
from pulse.models.events import DateRange
from pulse.storage.base import SnapshotStore
from pulse.storage.memory import InMemorySnapshotStore
from pulse.utils.logging import bind_run_context, clear_run_context
from pulse.utils.timeutils import ensure_utc, require_valid_range

logger = structlog.get_logger()


def snapshot_digest(snapshot: AnalyticsSnapshot) -> str:
    """Stable content hash of a snapshot body."""
    body = json.dumps(snapshot.content_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:16]


class AnalyticsPipeline:
    """
    Orchestrates every engine component over one event feed and date range.

    Attributes:
        config: Engine configuration shared by all components
        store: Snapshot store for previous scores and persisted snapshots
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[SnapshotStore] = None,
        adapter: Optional[EventFeedAdapter] = None,
    ):
        self.config = config or EngineConfig()
        self.store = store or InMemorySnapshotStore()
        self.adapter = adapter or EventFeedAdapter()

        self.cohort_builder = CohortBuilder(self.config)
        self.retention_calculator = RetentionCalculator(self.config)
        self.aggregator = MetricAggregator(self.config)
        self.metric_series = DailyMetricSeries(self.config, self.aggregator)
        self.baseline_estimator = BaselineEstimator(self.config)
        self.anomaly_detector = AnomalyDetector(self.config)
        self.health_scorer = HealthScorer(self.config)
        self.churn_predictor = ChurnRiskPredictor(self.config)
        self.forecast_projector = ForecastProjector(self.config, self.baseline_estimator)
        self.logger = logger.bind(component="analytics_pipeline")

    def run(
        self,
        records: Iterable[Any],
        date_range: DateRange,
        entity_ids: Optional[Iterable[str]] = None,
        payment_states: Optional[dict[str, PaymentState]] = None,
        now: Optional[datetime] = None,
        persist: bool = False,
    ) -> AnalyticsSnapshot:
        """
        Recompute every analytics output for a date range.

        Args:
            records: Raw event-store documents and/or Events
            date_range: Range cohorts, metrics and scores are computed for
            entity_ids: Entities to score; defaults to every entity in the feed
            payment_states: Billing state per entity
            now: Reference instant; defaults to the end of the range
            persist: Write scores and the snapshot to the store

        Returns:
            AnalyticsSnapshot

        Raises:
            InvalidRangeError: If the date range is malformed
        """
        require_valid_range(date_range.start, date_range.end)
        now = ensure_utc(now) if now is not None else date_range.end

        bind_run_context(
            range_start=date_range.start.isoformat(),
            range_end=date_range.end.isoformat(),
        )
        try:
            snapshot = self._run(records, date_range, entity_ids, payment_states, now)
            if persist:
                self.store.write_health_scores(snapshot.health_scores)
                self.store.write_snapshot(snapshot)
        finally:
            clear_run_context()
        return snapshot

    def _run(
        self,
        records: Iterable[Any],
        date_range: DateRange,
        entity_ids: Optional[Iterable[str]],
        payment_states: Optional[dict[str, PaymentState]],
        now: datetime,
    ) -> AnalyticsSnapshot:
        self.logger.info("pipeline_started", now=now.isoformat())

        events, report = self.adapter.ingest(records)
        events = [e for e in events if e.timestamp <= now]

        # Cohorts and retention
        timelines = self.cohort_builder.build_timelines(events, as_of=now)
        cohorts = self.cohort_builder.build_cohorts(date_range, events, timelines=timelines)
        retention = self.retention_calculator.calculate_all(
            cohorts, self.config.max_periods, timelines
        )
        weekly = self.retention_calculator.calculate_weekly_retention(events, date_range)

        # Daily metrics, baselines and anomalies
        series = self.metric_series.build(events, date_range.start, date_range.end)
        history, current, as_of = self.metric_series.split_current(series)
        baselines = self.baseline_estimator.estimate_many(history, now=as_of)
        anomalies = self.anomaly_detector.detect_anomalies(current, baselines, now=now)

        # Per-entity scores
        ids = sorted(set(entity_ids) if entity_ids is not None else timelines)
        previous = {}
        for entity_id in ids:
            score = self.store.read_previous_health_score(entity_id)
            if score is not None:
                previous[entity_id] = score
        health_scores = self.health_scorer.score_users(
            ids, date_range, events, payment_states, previous, now=now
        )
        churn = self.churn_predictor.predict_many(ids, events, payment_states, now=now)

        # Forecasts
        forecasts = []
        for metric in MONITORED_METRICS:
            forecasts.extend(self.forecast_projector.project_all(metric, series[metric]))

        snapshot = AnalyticsSnapshot(
            date_range=date_range,
            generated_at=now,
            cohorts={name.value: sorted(members) for name, members in cohorts.items()},
            retention=retention,
            weekly_retention=weekly,
            baselines=baselines,
            current_metrics=current,
            anomalies=anomalies,
            health_scores=health_scores,
            churn_predictions=churn,
            forecasts=forecasts,
            skipped_records=report.skipped,
        )
        snapshot = snapshot.model_copy(update={"snapshot_id": snapshot_digest(snapshot)})

        self.logger.info(
            "pipeline_completed",
            snapshot_id=snapshot.snapshot_id,
            events=len(events),
            skipped_records=report.skipped_count,
            cohorts=len(cohorts),
            anomalies=len(anomalies),
            health_scores=len(health_scores),
        )
        return snapshot

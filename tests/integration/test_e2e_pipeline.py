"""
End-to-end pipeline integration tests for Pulse.

Runs raw event-store documents through EventFeedAdapter and the full
AnalyticsPipeline against a snapshot store, checking persistence, score
trends across runs and boundary error handling.
"""

from datetime import timedelta

import pandas as pd
import pytest

from pulse.engine.pipeline import AnalyticsPipeline
from pulse.errors import InvalidRangeError
from pulse.models.enums import PaymentStatus, Plan, TrendDirection
from pulse.models.events import DateRange
from pulse.storage.memory import InMemorySnapshotStore
from tests.conftest import T0, MockStorage, make_payment_state, make_raw_record


@pytest.fixture
def feed_range():
    return DateRange.between(T0 - timedelta(hours=1), T0 + timedelta(days=3))


class TestPipelineIngestion:
    """Raw records through the adapter and into the snapshot."""

    def test_pipeline_run_reports_skipped_records(self, raw_feed, feed_range):
        snapshot = AnalyticsPipeline().run(raw_feed, feed_range)

        assert [(s.index, s.field) for s in snapshot.skipped_records] == [
            (5, "entityId"),
            (6, "timestamp"),
            (7, "timestamp"),
        ]
        assert {s.entity_id for s in snapshot.health_scores} == {"u1", "u2"}

    def test_pipeline_run_builds_cohorts(self, raw_feed, feed_range):
        snapshot = AnalyticsPipeline().run(raw_feed, feed_range)
        assert snapshot.cohorts == {"EXPORTERS_WEEK1": ["u2"], "ONE_AND_DONE": ["u1"]}

    def test_pipeline_run_accepts_dataframe_rows(self, raw_feed, feed_range):
        valid = pd.DataFrame(raw_feed[:2])
        snapshot = AnalyticsPipeline().run(valid.to_dict("records"), feed_range)
        assert snapshot.skipped_records == []
        assert [s.entity_id for s in snapshot.health_scores] == ["u1"]

    def test_pipeline_run_invalid_range_raises(self, raw_feed):
        reversed_range = DateRange(start=T0 + timedelta(days=1), end=T0)
        with pytest.raises(InvalidRangeError):
            AnalyticsPipeline().run(raw_feed, reversed_range)


class TestPipelinePersistence:
    """Snapshot store interaction."""

    def test_pipeline_run_does_not_persist_by_default(self, raw_feed, feed_range, mock_storage):
        AnalyticsPipeline(store=mock_storage).run(raw_feed, feed_range)
        assert mock_storage.written_scores == []
        assert mock_storage.snapshots == []
        assert sorted(mock_storage.score_reads) == ["u1", "u2"]

    def test_pipeline_run_persist_writes_scores_and_snapshot(self, raw_feed, feed_range, mock_storage):
        snapshot = AnalyticsPipeline(store=mock_storage).run(raw_feed, feed_range, persist=True)
        assert mock_storage.written_scores == snapshot.health_scores
        assert mock_storage.read_latest_snapshot() is snapshot

    def test_pipeline_run_previous_score_sets_trend(self, raw_feed, feed_range):
        storage = MockStorage(previous_scores={"u1": 10})
        snapshot = AnalyticsPipeline(store=storage).run(raw_feed, feed_range)

        u1 = next(s for s in snapshot.health_scores if s.entity_id == "u1")
        assert u1.trend.previous_score == 10
        assert u1.trend.score_change == u1.score - 10
        assert u1.trend.direction == TrendDirection.IMPROVING

        u2 = next(s for s in snapshot.health_scores if s.entity_id == "u2")
        assert u2.trend.previous_score is None

    def test_pipeline_rerun_is_stable_with_memory_store(self, raw_feed, feed_range):
        store = InMemorySnapshotStore()
        pipeline = AnalyticsPipeline(store=store)
        first = pipeline.run(raw_feed, feed_range, persist=True)
        second = pipeline.run(raw_feed, feed_range, persist=True)

        for score in second.health_scores:
            assert score.trend.direction == TrendDirection.STABLE
            assert score.trend.score_change == 0
        assert store.read_latest_snapshot().snapshot_id == second.snapshot_id
        assert first.snapshot_id != second.snapshot_id

    def test_pipeline_run_payment_states(self, raw_feed, feed_range):
        states = {
            "u1": make_payment_state(PaymentStatus.PAST_DUE, failed_charges=1, plan=Plan.PRO),
            "u2": make_payment_state(PaymentStatus.CANCELED),
        }
        snapshot = AnalyticsPipeline().run(raw_feed, feed_range, payment_states=states)

        by_entity = {s.entity_id: s for s in snapshot.health_scores}
        assert by_entity["u1"].factors.payment == 2
        assert by_entity["u2"].factors.payment == 0

        churn = {p.entity_id: p for p in snapshot.churn_predictions}
        assert churn["u1"].factors.payment_issues == 20.0
        assert churn["u2"].factors.payment_issues == 25.0


class TestPipelineScoping:
    """Entity selection and time cut-offs."""

    def test_pipeline_run_entity_subset(self, raw_feed, feed_range):
        snapshot = AnalyticsPipeline().run(raw_feed, feed_range, entity_ids=["u2", "nobody"])
        assert [s.entity_id for s in snapshot.health_scores] == ["u2"]
        assert sorted(p.entity_id for p in snapshot.churn_predictions) == ["nobody", "u2"]

    def test_pipeline_run_now_excludes_later_records(self, feed_range):
        records = [
            make_raw_record("u1", "signup", T0.isoformat()),
            make_raw_record("u1", "mindmap_export", (T0 + timedelta(days=2)).isoformat()),
        ]
        snapshot = AnalyticsPipeline().run(records, feed_range, now=T0 + timedelta(days=1))
        assert snapshot.cohorts == {}
        assert snapshot.generated_at == T0 + timedelta(days=1)

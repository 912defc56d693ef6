"""
Golden Path (End-to-End) Tests for the Pulse analytics engine.

These tests pin the engine's behavior on small fixed datasets with
hand-computed expected values. Each scenario exercises one component the
way a dashboard consumes it; the last group runs the full pipeline and
checks snapshot determinism.
"""

from datetime import timedelta

import pytest

from pulse.engine.cohorts.builder import CohortBuilder
from pulse.engine.cohorts.retention import RetentionCalculator
from pulse.engine.detection.anomaly import AnomalyDetector
from pulse.engine.detection.baseline import BaselineEstimator
from pulse.engine.pipeline import AnalyticsPipeline
from pulse.engine.scoring.health_scorer import FACTOR_RECOMMENDATIONS, HealthScorer
from pulse.models.analytics import HealthFactors
from pulse.models.enums import CohortName, EventType, RiskLevel, Severity, TrendDirection
from pulse.models.events import DateRange
from tests.conftest import T0, make_baseline, make_event, make_history


# ============================================================================
# Scenario A: Signups -> Cohorts -> Retention
# ============================================================================


def test_golden_cohort_retention_exporters(scenario_a_events, signup_window):
    """
    Golden path: 10 signups, 4 export in week 1, 3 of those return in period 1.

    Verifies:
    - EXPORTERS_WEEK1 has exactly the 4 exporters
    - ONE_AND_DONE holds the single-creation user
    - Cohorts with no members are omitted
    - Period 1 retention is 0.75 and later periods drop to 0
    """
    builder = CohortBuilder()
    timelines = builder.build_timelines(scenario_a_events)
    cohorts = builder.build_cohorts(signup_window, scenario_a_events, timelines=timelines)

    assert cohorts == {
        CohortName.EXPORTERS_WEEK1: frozenset({"user_000", "user_001", "user_002", "user_003"}),
        CohortName.ONE_AND_DONE: frozenset({"user_009"}),
    }

    curve = RetentionCalculator().calculate_retention(
        CohortName.EXPORTERS_WEEK1, cohorts[CohortName.EXPORTERS_WEEK1], 3, timelines
    )
    assert curve.size == 4
    assert [p.retention_rate for p in curve.points] == [1.0, 0.75, 0.0, 0.0]
    assert curve.points[1].active_count == 3
    assert curve.points[1].cohort_size == 4


def test_golden_cohort_signup_window_filters(scenario_a_events):
    """Signups outside the window never reach any cohort."""
    later_window = DateRange.between(T0 + timedelta(days=2), T0 + timedelta(days=9))
    assert CohortBuilder().build_cohorts(later_window, scenario_a_events) == {}


# ============================================================================
# Scenario B: Baseline -> Anomaly
# ============================================================================


def test_golden_anomaly_critical_spike():
    """
    Golden path: expected 100, spread 10, current 160.

    Verifies deviation 60%, critical severity, z-score 6 and the message.
    """
    anomalies = AnomalyDetector().detect_anomalies(
        {"daily_maps_created": 160.0},
        {"daily_maps_created": make_baseline("daily_maps_created", 100.0, 10.0)},
        now=T0,
    )

    assert len(anomalies) == 1
    anomaly = anomalies[0]
    assert anomaly.deviation_pct == 60.0
    assert anomaly.severity == Severity.CRITICAL
    assert anomaly.z_score == 6.0
    assert anomaly.id == "daily_maps_created-2024-01-01T00:00:00+00:00"
    assert anomaly.message == (
        "daily_maps_created is 60.0% higher than 7-day average (100.00 vs 160.00)"
    )


def test_golden_anomaly_from_history():
    """A flat week of 100s then 130 today is a warning; the same drop on a failure rate is not."""
    history = make_history([100.0] * 7)
    estimator = BaselineEstimator()
    baselines = estimator.estimate_many(
        {"daily_maps_created": history, "error_rate": history}, now=T0
    )
    assert baselines["daily_maps_created"].expected_value == 100.0
    assert baselines["daily_maps_created"].spread == 0.0

    anomalies = AnomalyDetector().detect_anomalies(
        {"daily_maps_created": 130.0, "error_rate": 40.0}, baselines, now=T0
    )
    assert [(a.metric, a.severity) for a in anomalies] == [("daily_maps_created", Severity.WARNING)]
    assert anomalies[0].z_score is None


def test_golden_pipeline_first_error_after_clean_week_is_not_unbounded():
    """A week with zero errors then one error in fifty events never yields a runaway deviation."""
    events = [
        make_event("user_001", EventType.CREATION, T0 + timedelta(days=d, hours=9)) for d in range(7)
    ]
    events += [
        make_event("user_001", EventType.CREATION, T0 + timedelta(days=7, hours=9, minutes=m))
        for m in range(49)
    ]
    events.append(make_event("user_001", EventType.ERROR, T0 + timedelta(days=7, hours=10)))

    snapshot = AnalyticsPipeline().run(events, DateRange.between(T0, T0 + timedelta(days=7, hours=12)))

    assert snapshot.current_metrics["error_rate"] == 2.0
    assert snapshot.baselines["error_rate"].expected_value == 0.0
    assert "error_rate" not in {a.metric for a in snapshot.anomalies}
    assert all(abs(a.deviation_pct) < 1e6 for a in snapshot.anomalies)


def test_golden_pipeline_shares_aggregator_with_series():
    pipeline = AnalyticsPipeline()
    assert pipeline.metric_series.aggregator is pipeline.aggregator


# ============================================================================
# Scenario C: Factors -> Health Score -> Trend
# ============================================================================


def test_golden_health_score_improving():
    """
    Golden path: factors 5/20/25/15/10 with previous score 60.

    Verifies score 75, low risk, +15 improving, and the activity recommendation.
    """
    factors = HealthFactors(activity=5, engagement=20, feature_usage=25, sentiment=15, payment=10)
    score = HealthScorer().build_score("user_001", factors, computed_at=T0, previous_score=60)

    assert score.score == 75
    assert score.risk_level == RiskLevel.LOW
    assert score.trend.score_change == 15
    assert score.trend.direction == TrendDirection.IMPROVING
    assert score.trend.previous_score == 60
    assert score.recommendations == [FACTOR_RECOMMENDATIONS["activity"]]

    dashboard = score.to_dashboard()
    assert dashboard["riskLevel"] == "low"
    assert dashboard["factors"]["featureUsage"] == 25
    assert dashboard["trend"]["scoreChange"] == 15


# ============================================================================
# Scenario D: Empty feed -> no cohorts
# ============================================================================


def test_golden_empty_feed_no_cohorts(signup_window):
    """An empty feed yields an empty cohort map, not an error."""
    assert CohortBuilder().build_cohorts(signup_window, []) == {}


def test_golden_entity_without_signup_no_cohorts(signup_window):
    """Activity without a qualifying signup places the entity in no cohort."""
    events = [
        make_event("user_001", EventType.LOGIN, T0),
        make_event("user_001", EventType.EXPORT, T0 + timedelta(hours=1)),
    ]
    assert CohortBuilder().build_cohorts(signup_window, events) == {}


def test_golden_pipeline_empty_feed():
    """The pipeline tolerates an empty feed and a requested entity with no events."""
    date_range = DateRange.between(T0, T0 + timedelta(days=14))
    snapshot = AnalyticsPipeline().run([], date_range, entity_ids=["ghost"])

    assert snapshot.cohorts == {}
    assert snapshot.retention == []
    assert snapshot.health_scores == []
    assert snapshot.anomalies == []
    assert [p.entity_id for p in snapshot.churn_predictions] == ["ghost"]


# ============================================================================
# Full pipeline
# ============================================================================


@pytest.fixture
def scenario_range():
    return DateRange.between(T0, T0 + timedelta(days=21))


def test_golden_pipeline_scenario_a(scenario_a_events, scenario_range):
    """
    Golden path: scenario A through the whole pipeline.

    Verifies cohorts, the exporters curve, one score per entity and the
    forecast set for every monitored metric.
    """
    snapshot = AnalyticsPipeline().run(scenario_a_events, scenario_range)

    assert snapshot.cohorts == {
        "EXPORTERS_WEEK1": ["user_000", "user_001", "user_002", "user_003"],
        "ONE_AND_DONE": ["user_009"],
    }
    exporters = next(c for c in snapshot.retention if c.cohort_name == CohortName.EXPORTERS_WEEK1)
    assert exporters.points[1].retention_rate == 0.75
    assert len(exporters.points) == 13

    assert len(snapshot.health_scores) == 10
    scores = [s.score for s in snapshot.health_scores]
    assert scores == sorted(scores)
    assert all(s.computed_at == scenario_range.end for s in snapshot.health_scores)

    risks = [p.churn_risk for p in snapshot.churn_predictions]
    assert risks == sorted(risks, reverse=True)

    assert len(snapshot.forecasts) == 8 * 3
    assert snapshot.generated_at == scenario_range.end


def test_golden_pipeline_deterministic_snapshot_id(scenario_a_events, scenario_range):
    """Same input and same now reproduce the snapshot exactly; a different now does not."""
    pipeline = AnalyticsPipeline()
    first = pipeline.run(scenario_a_events, scenario_range)
    second = pipeline.run(list(reversed(scenario_a_events)), scenario_range)

    assert first.snapshot_id == second.snapshot_id
    assert len(first.snapshot_id) == 16
    assert first.to_dashboard() == second.to_dashboard()

    later = pipeline.run(scenario_a_events, scenario_range, now=scenario_range.end + timedelta(days=1))
    assert later.snapshot_id != first.snapshot_id


def test_golden_pipeline_ignores_events_after_now(scenario_a_events, scenario_range):
    """Events stamped after now do not influence the snapshot."""
    future = make_event("user_000", EventType.EXPORT, scenario_range.end + timedelta(days=3))
    base = AnalyticsPipeline().run(scenario_a_events, scenario_range)
    with_future = AnalyticsPipeline().run(scenario_a_events + [future], scenario_range)
    assert base.snapshot_id == with_future.snapshot_id

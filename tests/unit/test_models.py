"""
Unit tests for configuration, data models, error types and the in-memory
snapshot store.
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from pydantic import ValidationError

from pulse.config import EngineConfig, ScoreCutoffs, SeverityThresholds, Settings, get_settings
from pulse.errors import DataShapeError, InsufficientDataError, InvalidRangeError, PulseError
from pulse.models.analytics import (
    AnalyticsSnapshot,
    ConfidenceInterval,
    HealthFactors,
    HealthScore,
)
from pulse.models.enums import (
    BaselinePreset,
    ForecastPeriod,
    MetricDirection,
    RiskLevel,
    Severity,
)
from pulse.models.events import DateRange, Event
from pulse.storage.memory import InMemorySnapshotStore
from pulse.engine.scoring.health_scorer import HealthScorer
from pulse.utils.logging import add_severity, bind_run_context, clear_run_context, configure_logging
from tests.conftest import T0, make_event


# ============================================================================
# Configuration
# ============================================================================


class TestEngineConfig:
    """Test engine configuration defaults and validation."""

    def test_engine_config_defaults(self):
        config = EngineConfig()
        assert config.week_window_days == 7
        assert config.period_days == 7
        assert config.max_periods == 12
        assert config.baseline_window_days == 7
        assert config.severity_thresholds.warning == 25.0
        assert config.severity_thresholds.critical == 50.0
        assert config.score_cutoffs == ScoreCutoffs(critical=30, high=50, medium=70)

    def test_engine_config_is_frozen(self):
        with pytest.raises(ValidationError):
            EngineConfig().max_periods = 3

    def test_engine_config_direction_defaults(self):
        config = EngineConfig()
        assert config.direction_for("error_rate") == MetricDirection.HIGHER_IS_BAD
        assert config.direction_for("daily_maps_created") == MetricDirection.SYMMETRIC

    def test_engine_config_baseline_window_override(self):
        config = EngineConfig(baseline_window_overrides={"daily_token_cost": 30})
        assert config.baseline_window_for("daily_token_cost") == 30
        assert config.baseline_window_for("error_rate") == 7

    def test_severity_thresholds_must_increase(self):
        with pytest.raises(ValidationError):
            SeverityThresholds(warning=50.0, critical=25.0)

    def test_severity_thresholds_info_below_warning(self):
        with pytest.raises(ValidationError):
            SeverityThresholds(info=30.0)

    def test_score_cutoffs_must_increase(self):
        with pytest.raises(ValidationError):
            ScoreCutoffs(critical=50, high=50, medium=70)

    def test_engine_config_tracked_features_not_empty(self):
        with pytest.raises(ValidationError):
            EngineConfig(tracked_features=())


class TestSettings:
    """Test environment-driven settings."""

    def test_settings_engine_config_month_preset(self):
        settings = Settings(baseline_preset=BaselinePreset.MONTH)
        assert settings.engine_config().baseline_window_days == 30

    def test_settings_engine_config_thresholds(self):
        settings = Settings(warning_threshold_pct=20.0, critical_threshold_pct=40.0)
        thresholds = settings.engine_config().severity_thresholds
        assert (thresholds.warning, thresholds.critical) == (20.0, 40.0)

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_PERIODS", "4")
        monkeypatch.setenv("BASELINE_PRESET", "month")
        settings = Settings()
        assert settings.max_periods == 4
        assert settings.baseline_preset == BaselinePreset.MONTH

    def test_settings_rejects_unknown_log_format(self):
        with pytest.raises(ValidationError):
            Settings(log_format="xml")


# ============================================================================
# Models
# ============================================================================


class TestModels:
    """Test model validation and serialization."""

    def test_event_is_frozen(self):
        with pytest.raises(ValidationError):
            make_event().entity_id = "other"

    def test_event_null_attributes_become_empty(self):
        event = Event(entity_id="u1", type="edit", timestamp=T0, attributes=None)
        assert event.attributes == {}

    def test_event_naive_timestamp_becomes_utc(self):
        event = Event(entity_id="u1", type="edit", timestamp=datetime(2024, 1, 1))
        assert event.timestamp.tzinfo == timezone.utc

    def test_event_camel_case_dump(self):
        dumped = make_event("u1").to_dashboard()
        assert dumped["entityId"] == "u1"
        assert dumped["type"] == "creation"

    def test_event_accepts_camel_case_input(self):
        event = Event.model_validate({"entityId": "u1", "type": "export", "timestamp": T0})
        assert event.entity_id == "u1"

    def test_date_range_between_rejects_reversed(self):
        with pytest.raises(InvalidRangeError):
            DateRange.between(T0, T0 - timedelta(seconds=1))

    def test_date_range_contains_inclusive(self):
        rng = DateRange.between(T0, T0 + timedelta(days=1))
        assert rng.contains(T0)
        assert rng.contains(T0 + timedelta(days=1))
        assert not rng.contains(T0 + timedelta(days=1, seconds=1))

    def test_health_score_must_equal_factor_sum(self):
        factors = HealthFactors(activity=5, engagement=5, feature_usage=5, sentiment=5, payment=5)
        with pytest.raises(ValidationError):
            HealthScore(
                entity_id="u1",
                score=30,
                factors=factors,
                risk_level=RiskLevel.HIGH,
                computed_at=T0,
            )

    def test_health_factors_bounds(self):
        with pytest.raises(ValidationError):
            HealthFactors(activity=26, engagement=0, feature_usage=0, sentiment=0, payment=0)

    def test_confidence_interval_ordering(self):
        with pytest.raises(ValidationError):
            ConfidenceInterval(lower=2.0, upper=1.0)

    def test_forecast_period_from_days(self):
        assert ForecastPeriod.from_days(60) == ForecastPeriod.D60
        with pytest.raises(ValueError):
            ForecastPeriod.from_days(7)

    def test_severity_rank(self):
        assert sorted([Severity.INFO, Severity.CRITICAL, Severity.WARNING], key=lambda s: s.rank) == [
            Severity.CRITICAL,
            Severity.WARNING,
            Severity.INFO,
        ]


class TestErrors:
    """Test the error taxonomy."""

    def test_errors_share_base(self):
        for exc in (InvalidRangeError("x"), InsufficientDataError("x"), DataShapeError("x", field="f")):
            assert isinstance(exc, PulseError)

    def test_contract_errors_are_value_errors(self):
        assert isinstance(InvalidRangeError("x"), ValueError)
        assert isinstance(DataShapeError("x", field="f"), ValueError)

    def test_insufficient_data_carries_subject(self):
        assert InsufficientDataError("none", subject="u1").subject == "u1"


# ============================================================================
# InMemorySnapshotStore
# ============================================================================


class TestInMemorySnapshotStore:
    """Test the in-memory snapshot store."""

    def test_store_previous_score_roundtrip(self):
        store = InMemorySnapshotStore()
        score = HealthScorer().build_score(
            "u1",
            HealthFactors(activity=10, engagement=10, feature_usage=10, sentiment=10, payment=10),
            computed_at=T0,
        )
        assert store.read_previous_health_score("u1") is None
        assert store.write_health_scores([score]) == 1
        assert store.read_previous_health_score("u1") == 50

    def test_store_seeded_scores(self):
        assert InMemorySnapshotStore({"u1": 42}).read_previous_health_score("u1") == 42

    def test_store_latest_snapshot(self):
        store = InMemorySnapshotStore()
        snapshot = AnalyticsSnapshot(
            snapshot_id="abc",
            date_range=DateRange.between(T0, T0),
            generated_at=T0,
        )
        assert store.read_latest_snapshot() is None
        assert store.write_snapshot(snapshot) == "abc"
        assert store.read_latest_snapshot() is snapshot


# ============================================================================
# Logging and settings cache
# ============================================================================


class TestLogging:
    """Test structlog configuration helpers."""

    def test_add_severity_uppercases_method(self):
        assert add_severity(None, "warning", {"event": "x"}) == {"event": "x", "severity": "WARNING"}

    def test_configure_logging_console(self):
        configure_logging(Settings(log_format="console", testing=True))
        assert structlog.is_configured()

    def test_run_context_bind_and_clear(self):
        bind_run_context(range_start="2024-01-01")
        assert structlog.contextvars.get_contextvars()["range_start"] == "2024-01-01"
        clear_run_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

"""Data models for the analytics engine."""

from pulse.models.analytics import (
    HEALTH_FACTOR_MAX,
    AggregateResult,
    AnalyticsSnapshot,
    Anomaly,
    Baseline,
    ChurnFactors,
    ChurnPrediction,
    ConfidenceInterval,
    Forecast,
    HealthFactors,
    HealthScore,
    HealthTrend,
    PaymentState,
    TokenUsage,
)
from pulse.models.cohorts import Cohort, RetentionCurve, RetentionPoint, WeeklyRetentionPoint
from pulse.models.enums import (
    ACTIVITY_EVENT_TYPES,
    BaselinePreset,
    CohortName,
    EventType,
    ForecastPeriod,
    ForecastTrend,
    MetricDirection,
    PaymentStatus,
    Plan,
    RiskLevel,
    Severity,
    TrendDirection,
)
from pulse.models.events import (
    DateRange,
    Event,
    MetricPoint,
    NormalizationReport,
    SkippedRecord,
)

__all__ = [
    "ACTIVITY_EVENT_TYPES",
    "HEALTH_FACTOR_MAX",
    "AggregateResult",
    "AnalyticsSnapshot",
    "Anomaly",
    "Baseline",
    "BaselinePreset",
    "ChurnFactors",
    "ChurnPrediction",
    "Cohort",
    "CohortName",
    "ConfidenceInterval",
    "DateRange",
    "Event",
    "EventType",
    "Forecast",
    "ForecastPeriod",
    "ForecastTrend",
    "HealthFactors",
    "HealthScore",
    "HealthTrend",
    "MetricDirection",
    "MetricPoint",
    "NormalizationReport",
    "PaymentState",
    "PaymentStatus",
    "Plan",
    "RetentionCurve",
    "RetentionPoint",
    "RiskLevel",
    "Severity",
    "SkippedRecord",
    "TokenUsage",
    "TrendDirection",
    "WeeklyRetentionPoint",
]

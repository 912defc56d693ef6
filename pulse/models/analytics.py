"""
Analytics output models: baselines, anomalies, health scores, forecasts,
churn predictions, aggregates, and the pipeline snapshot.
"""

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from pulse.models.base import SchemaModel
from pulse.models.cohorts import RetentionCurve, WeeklyRetentionPoint
from pulse.models.enums import (
    ForecastPeriod,
    ForecastTrend,
    PaymentStatus,
    Plan,
    RiskLevel,
    Severity,
    TrendDirection,
)
from pulse.models.events import DateRange, SkippedRecord
from pulse.utils.timeutils import ensure_utc


class Baseline(SchemaModel):
    """
    Expected value and spread of a metric over a trailing window.

    Attributes:
        metric_key: Metric identifier
        expected_value: Mean of the window sample
        spread: Population standard deviation of the window sample
        sample_size: Number of points in the window
        computed_at: Instant the window ends at (exclusive)
        window_days: Trailing window length
        low_confidence: True when fewer than two points were available
    """

    model_config = ConfigDict(frozen=True)

    metric_key: str
    expected_value: float
    spread: float = Field(ge=0.0)
    sample_size: int = Field(ge=0)
    computed_at: datetime
    window_days: int = Field(ge=1)
    low_confidence: bool = False


class Anomaly(SchemaModel):
    """A metric value that deviates from its baseline beyond a threshold."""

    model_config = ConfigDict(frozen=True)

    id: str
    metric: str
    current_value: float
    expected_value: float
    deviation_pct: float
    severity: Severity
    message: str
    timestamp: datetime
    z_score: Optional[float] = None


class PaymentState(SchemaModel):
    """Billing state for one entity, supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    status: PaymentStatus = PaymentStatus.CURRENT
    failed_charges: int = Field(default=0, ge=0)
    plan: Plan = Plan.FREE


class HealthFactors(SchemaModel):
    """Per-factor contributions to a health score."""

    model_config = ConfigDict(frozen=True)

    activity: int = Field(ge=0, le=25)
    engagement: int = Field(ge=0, le=25)
    feature_usage: int = Field(ge=0, le=25)
    sentiment: int = Field(ge=0, le=15)
    payment: int = Field(ge=0, le=10)

    @property
    def total(self) -> int:
        return self.activity + self.engagement + self.feature_usage + self.sentiment + self.payment


# Maximum contribution of each factor; keys match HealthFactors field names.
HEALTH_FACTOR_MAX = {
    "activity": 25,
    "engagement": 25,
    "feature_usage": 25,
    "sentiment": 15,
    "payment": 10,
}


class HealthTrend(SchemaModel):
    """Score movement against the previously stored score."""

    model_config = ConfigDict(frozen=True)

    score_change: int = 0
    direction: TrendDirection = TrendDirection.STABLE
    previous_score: Optional[int] = None


class HealthScore(SchemaModel):
    """
    Composite 0-100 health score for one entity.

    The score always equals the sum of its factors, and the risk tier is a
    pure function of the score.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str
    score: int = Field(ge=0, le=100)
    factors: HealthFactors
    risk_level: RiskLevel
    trend: HealthTrend = Field(default_factory=HealthTrend)
    recommendations: list[str] = Field(default_factory=list)
    computed_at: datetime

    @model_validator(mode="after")
    def validate_score_matches_factors(self) -> "HealthScore":
        if self.score != self.factors.total:
            raise ValueError(
                f"score {self.score} does not equal sum of factors {self.factors.total}"
            )
        return self


class ConfidenceInterval(SchemaModel):
    model_config = ConfigDict(frozen=True)

    lower: float
    upper: float

    @model_validator(mode="after")
    def validate_bounds(self) -> "ConfidenceInterval":
        if self.lower > self.upper:
            raise ValueError("confidence interval lower bound exceeds upper bound")
        return self


class Forecast(SchemaModel):
    """
    Linear projection of a metric over a fixed horizon.

    Attributes:
        metric: Metric identifier
        period: Horizon (30d, 60d, 90d)
        forecasted_value: Projected value at the horizon
        confidence_interval: Band scaled from the baseline spread
        trend: Direction of the fitted slope
        growth_rate: Projected change over the horizon as % of the mean
        slope: Fitted change per day
        sample_size: History points used in the fit
    """

    model_config = ConfigDict(frozen=True)

    metric: str
    period: ForecastPeriod
    forecasted_value: float
    confidence_interval: ConfidenceInterval
    trend: ForecastTrend
    growth_rate: float
    slope: float
    sample_size: int = Field(ge=1)


class ChurnFactors(SchemaModel):
    """Rule-based churn risk contributions."""

    model_config = ConfigDict(frozen=True)

    activity_drop: float = Field(ge=0.0, le=30.0)
    payment_issues: float = Field(ge=0.0, le=25.0)
    feature_usage: float = Field(ge=0.0, le=20.0)
    sentiment_trend: float = Field(ge=0.0, le=15.0)
    error_frequency: float = Field(ge=0.0, le=10.0)

    @property
    def total(self) -> float:
        return (
            self.activity_drop
            + self.payment_issues
            + self.feature_usage
            + self.sentiment_trend
            + self.error_frequency
        )


class ChurnPrediction(SchemaModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    churn_risk: float = Field(ge=0.0, le=100.0)
    predicted_churn_date: Optional[datetime] = None
    factors: ChurnFactors
    intervention_recommendations: list[str] = Field(default_factory=list)


class AggregateResult(SchemaModel):
    """Sum of numeric fields over a range, optionally grouped."""

    model_config = ConfigDict(frozen=True)

    total: float = 0.0
    count: int = Field(default=0, ge=0)
    by_group: Optional[dict[str, float]] = None


class TokenUsage(SchemaModel):
    """Token and cost roll-up for AI usage events."""

    model_config = ConfigDict(frozen=True)

    tokens_in: float = 0.0
    tokens_out: float = 0.0
    total_tokens: float = 0.0
    cost: float = 0.0
    event_count: int = 0
    by_model: dict[str, float] = Field(default_factory=dict)


class AnalyticsSnapshot(SchemaModel):
    """
    Output of one full batch recomputation.

    Attributes:
        snapshot_id: Content hash of the snapshot body
        date_range: Range the snapshot was computed for
        generated_at: The ``now`` the pipeline ran with
        cohorts: Cohort name -> sorted member ids (non-empty cohorts only)
        retention: Retention curve per cohort
        weekly_retention: Calendar-week retention rows
        baselines: Baseline per monitored metric
        current_metrics: Value of each monitored metric on the last day of the range
        anomalies: Anomalies, most severe first
        health_scores: Health scores, lowest first
        churn_predictions: Churn predictions, highest risk first
        forecasts: Forecasts per monitored metric
        skipped_records: Raw records the adapter skipped
    """

    snapshot_id: str = ""
    date_range: DateRange
    generated_at: datetime
    cohorts: dict[str, list[str]] = Field(default_factory=dict)
    retention: list[RetentionCurve] = Field(default_factory=list)
    weekly_retention: list[WeeklyRetentionPoint] = Field(default_factory=list)
    baselines: dict[str, Baseline] = Field(default_factory=dict)
    current_metrics: dict[str, float] = Field(default_factory=dict)
    anomalies: list[Anomaly] = Field(default_factory=list)
    health_scores: list[HealthScore] = Field(default_factory=list)
    churn_predictions: list[ChurnPrediction] = Field(default_factory=list)
    forecasts: list[Forecast] = Field(default_factory=list)
    skipped_records: list[SkippedRecord] = Field(default_factory=list)

    @field_validator("generated_at")
    @classmethod
    def normalize_generated_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def content_dict(self) -> dict:
        """Serializable body excluding the id, used for hashing."""
        return self.model_dump(mode="json", by_alias=True, exclude={"snapshot_id"})

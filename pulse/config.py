"""
Configuration management using pydantic-settings.

Two layers:
    Settings: process-level values loaded from environment variables (12-factor app).
    EngineConfig: immutable tuning passed into every engine component at
        construction. Engine code never reads Settings or module globals for
        window lengths, thresholds, or cutoffs.
"""

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pulse.models.enums import BaselinePreset, EventType, MetricDirection


class SeverityThresholds(BaseModel):
    """Absolute deviation percentages at which an anomaly is emitted."""

    model_config = ConfigDict(frozen=True)

    info: Optional[float] = Field(
        default=None, gt=0.0, description="Emit info anomalies at or above this |deviation| (disabled when None)"
    )
    warning: float = Field(default=25.0, gt=0.0, description="Warning at or above this |deviation|")
    critical: float = Field(default=50.0, gt=0.0, description="Critical at or above this |deviation|")

    @model_validator(mode="after")
    def validate_ordering(self) -> "SeverityThresholds":
        """Thresholds must be strictly increasing: info < warning < critical."""
        if self.warning >= self.critical:
            raise ValueError("warning threshold must be below critical threshold")
        if self.info is not None and self.info >= self.warning:
            raise ValueError("info threshold must be below warning threshold")
        return self


class ScoreCutoffs(BaseModel):
    """Health score upper bounds (exclusive) for each risk tier below 'low'."""

    model_config = ConfigDict(frozen=True)

    critical: int = Field(default=30, ge=0, le=100)
    high: int = Field(default=50, ge=0, le=100)
    medium: int = Field(default=70, ge=0, le=100)

    @model_validator(mode="after")
    def validate_ordering(self) -> "ScoreCutoffs":
        """Cutoffs must be strictly increasing."""
        if not self.critical < self.high < self.medium:
            raise ValueError("score cutoffs must satisfy critical < high < medium")
        return self


DEFAULT_METRIC_DIRECTIONS = {
    "error_rate": MetricDirection.HIGHER_IS_BAD,
    "job_failure_rate": MetricDirection.HIGHER_IS_BAD,
}

DEFAULT_TRACKED_FEATURES = (
    EventType.CREATION,
    EventType.EDIT,
    EventType.EXPORT,
    EventType.COLLABORATION,
    EventType.FILE_CONVERSION,
)


class EngineConfig(BaseModel):
    """
    Tunable parameters for the analytics engine.

    Built once per deployment (or per request when a caller overrides a value)
    and handed to each component's constructor.

    Attributes:
        week_window_days: Length of the week-1 observation window after signup
        period_days: Length of each retention period
        max_periods: Default number of retention periods after period 0
        severity_thresholds: Deviation percentages for anomaly severity
        score_cutoffs: Health score cutoffs for risk tiers
        baseline_window_days: Default trailing window for baselines
        baseline_window_overrides: Per-metric trailing window in days
        metric_directions: Per-metric deviation direction that counts as bad
        deviation_epsilon: Floor for the deviation denominator
        forecast_base_window_days: Baseline window used to size forecast intervals
        trend_epsilon: Relative slope (per day, vs. mean) below which a trend is stable
        forecast_smoothing_alpha: Optional exponential smoothing before fitting
        recommendation_fraction: Factor share of its maximum below which a
            recommendation is produced
    """

    model_config = ConfigDict(frozen=True)

    week_window_days: int = Field(default=7, ge=1, le=90)
    period_days: int = Field(default=7, ge=1, le=90)
    max_periods: int = Field(default=12, ge=0, le=104)

    severity_thresholds: SeverityThresholds = Field(default_factory=SeverityThresholds)
    score_cutoffs: ScoreCutoffs = Field(default_factory=ScoreCutoffs)

    baseline_window_days: int = Field(default=int(BaselinePreset.WEEK.days), ge=1, le=365)
    baseline_window_overrides: dict[str, int] = Field(default_factory=dict)
    metric_directions: dict[str, MetricDirection] = Field(
        default_factory=lambda: dict(DEFAULT_METRIC_DIRECTIONS)
    )
    deviation_epsilon: float = Field(default=1e-9, gt=0.0)

    forecast_base_window_days: int = Field(default=30, ge=1, le=365)
    trend_epsilon: float = Field(default=0.001, ge=0.0)
    forecast_smoothing_alpha: Optional[float] = Field(default=None, gt=0.0, le=1.0)

    # Health scorer tuning
    activity_lookback_days: int = Field(default=90, ge=1)
    activity_target_events: int = Field(default=50, ge=1)
    activity_frequency_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    engagement_target_ratio: float = Field(default=3.0, gt=0.0)
    tracked_features: tuple[EventType, ...] = DEFAULT_TRACKED_FEATURES
    failed_charge_penalty: int = Field(default=3, ge=0, le=10)
    past_due_penalty: int = Field(default=5, ge=0, le=10)
    recommendation_fraction: float = Field(default=0.4, ge=0.0, le=1.0)
    error_alert_count: int = Field(default=5, ge=0)
    upgrade_candidate_score: int = Field(default=60, ge=0, le=100)
    trend_tolerance: int = Field(default=0, ge=0)

    # Churn predictor tuning
    churn_window_days: int = Field(default=30, ge=1)
    churn_date_threshold: int = Field(default=70, ge=0, le=100)

    @field_validator("tracked_features")
    @classmethod
    def validate_tracked_features(cls, v: tuple[EventType, ...]) -> tuple[EventType, ...]:
        """At least one feature type is needed to score breadth."""
        if not v:
            raise ValueError("tracked_features must not be empty")
        return tuple(dict.fromkeys(v))

    def baseline_window_for(self, metric_key: str) -> int:
        """Trailing window in days for a metric's baseline."""
        return self.baseline_window_overrides.get(metric_key, self.baseline_window_days)

    def direction_for(self, metric_key: str) -> MetricDirection:
        """Which deviation direction counts as anomalous for a metric."""
        return self.metric_directions.get(metric_key, MetricDirection.SYMMETRIC)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Engine defaults
    week_window_days: int = Field(default=7, ge=1, le=90, description="Week-1 window length")
    period_days: int = Field(default=7, ge=1, le=90, description="Retention period length")
    max_periods: int = Field(default=12, ge=0, le=104, description="Retention periods to compute")
    baseline_preset: BaselinePreset = Field(
        default=BaselinePreset.WEEK, description="Baseline trailing window preset (week|month)"
    )
    warning_threshold_pct: float = Field(default=25.0, gt=0.0, description="Warning deviation %")
    critical_threshold_pct: float = Field(default=50.0, gt=0.0, description="Critical deviation %")

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    debug: bool = Field(default=False, description="Debug mode")
    testing: bool = Field(default=False, description="Testing mode")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and console renderers are supported."""
        v = v.lower()
        if v not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    def engine_config(self) -> EngineConfig:
        """Build the injected engine configuration from environment values."""
        return EngineConfig(
            week_window_days=self.week_window_days,
            period_days=self.period_days,
            max_periods=self.max_periods,
            baseline_window_days=self.baseline_preset.days,
            severity_thresholds=SeverityThresholds(
                warning=self.warning_threshold_pct,
                critical=self.critical_threshold_pct,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()

"""
Enumeration types for the analytics engine.

All enums inherit from str so they serialize as plain strings in the output
schemas dashboards consume.
"""

from enum import Enum


class EventType(str, Enum):
    """
    Canonical event types.

    Raw record types from the document store (``mindmap_export``,
    ``user_created``, ``mention``...) are mapped onto this taxonomy once by the
    event feed adapter.
    """

    # Lifecycle
    SIGNUP = "signup"

    # Content activity
    CREATION = "creation"
    EDIT = "edit"
    EXPORT = "export"
    COLLABORATION = "collaboration"
    FILE_CONVERSION = "file_conversion"

    # Usage / cost
    TOKEN_BURN = "token_burn"
    AI_JOB = "ai_job"

    # Presence
    LOGIN = "login"
    VIEW = "view"

    # Problems
    ERROR = "error"
    PAYMENT_FAILED = "payment_failed"

    OTHER = "other"


# Event types that count as "the user did something" for retention and recency.
ACTIVITY_EVENT_TYPES = frozenset(
    {
        EventType.CREATION,
        EventType.EDIT,
        EventType.EXPORT,
        EventType.COLLABORATION,
    }
)


class CohortName(str, Enum):
    """Behavioral cohorts defined by week-1 (or lifetime) activity."""

    EXPORTERS_WEEK1 = "EXPORTERS_WEEK1"
    EDITORS_3PLUS_WEEK1 = "EDITORS_3PLUS_WEEK1"
    ONE_AND_DONE = "ONE_AND_DONE"
    COLLABORATORS_WEEK1 = "COLLABORATORS_WEEK1"


class Severity(str, Enum):
    """Anomaly severity levels."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first."""
        return {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}[self]


class MetricDirection(str, Enum):
    """Which deviation direction counts as anomalous for a metric."""

    SYMMETRIC = "symmetric"
    HIGHER_IS_BAD = "higher_is_bad"
    LOWER_IS_BAD = "lower_is_bad"


class BaselinePreset(str, Enum):
    """Documented trailing-window presets for baseline estimation."""

    WEEK = "week"
    MONTH = "month"

    @property
    def days(self) -> int:
        return 7 if self is BaselinePreset.WEEK else 30


class RiskLevel(str, Enum):
    """Churn risk tier derived from a health score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TrendDirection(str, Enum):
    """Health score movement relative to the previous score."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class ForecastTrend(str, Enum):
    """Direction of a fitted metric trend."""

    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class ForecastPeriod(str, Enum):
    """Supported forecast horizons."""

    D30 = "30d"
    D60 = "60d"
    D90 = "90d"

    @property
    def days(self) -> int:
        return int(self.value[:-1])

    @classmethod
    def from_days(cls, days: int) -> "ForecastPeriod":
        """Map a horizon in days onto a supported period."""
        for period in cls:
            if period.days == days:
                return period
        raise ValueError(f"Unsupported forecast horizon: {days} days")


class PaymentStatus(str, Enum):
    """Billing state supplied by the caller for payment scoring."""

    CURRENT = "current"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class Plan(str, Enum):
    """Subscription plan."""

    FREE = "free"
    PRO = "pro"
    TEAM = "team"
    ENTERPRISE = "enterprise"

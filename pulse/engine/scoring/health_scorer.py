"""
Health Scorer: composite per-user health and churn-risk assessment.

Scores one entity over a window on five factors and sums them into a 0-100
health score:

    activity       0-25  event frequency vs. the user's own cadence, plus recency
    engagement     0-25  depth of work: (edits + collaborations) per creation
    feature_usage  0-25  breadth: distinct tracked feature types touched
    sentiment      0-15  mean sentiment score mapped from [-1, 1]
    payment        0-10  billing health

Each factor is rounded half-up to an integer before summing, so the score
always equals the sum of its factors. The risk tier follows from the score
through fixed cutoffs.
"""

import math
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import structlog

from pulse.config import EngineConfig
from pulse.errors import InsufficientDataError
from pulse.models.analytics import (
    HEALTH_FACTOR_MAX,
    HealthFactors,
    HealthScore,
    HealthTrend,
    PaymentState,
)
from pulse.models.enums import EventType, PaymentStatus, Plan, RiskLevel, TrendDirection
from pulse.models.events import DateRange, Event
from pulse.utils.timeutils import days_between, ensure_utc, require_valid_range

logger = structlog.get_logger()

NEUTRAL_SENTIMENT = 7.5

# Event types that do not count as the user using the product
_NON_USAGE_TYPES = frozenset({EventType.ERROR, EventType.PAYMENT_FAILED, EventType.OTHER})

FACTOR_RECOMMENDATIONS = {
    "activity": "User has low activity - consider re-engagement campaign",
    "engagement": "User is not creating mindmaps - may need onboarding support",
    "feature_usage": "User is not using key features - suggest feature discovery",
    "sentiment": "User sentiment is negative - review recent feedback",
    "payment": "User has billing problems - resolve payment issues",
}

UPGRADE_RECOMMENDATION = "High-value free user - consider upgrade campaign"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (7.5 -> 8)."""
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class HealthScorer:
    """
    Computes composite health scores for individual entities.

    Pure computation: the previous score for trend comparison is supplied by
    the caller (normally read from the snapshot store).
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="health_scorer")

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def activity_factor(
        self,
        window_events: list[Event],
        prior_events: list[Event],
        window: DateRange,
    ) -> float:
        """
        Activity on a 0-25 scale.

        Frequency compares the window's usage count with the count expected
        from the user's own prior cadence; users without prior history are
        compared with an absolute target. Recency decays linearly from the
        window end to the window start.
        """
        window_days = max(window.days, 1.0)
        usage_count = len(window_events)

        if prior_events:
            lookback_start = window.start - timedelta(days=self.config.activity_lookback_days)
            observed_from = max(lookback_start, prior_events[0].timestamp)
            prior_days = max(days_between(observed_from, window.start), 1.0)
            expected = len(prior_events) / prior_days * window_days
            frequency = _clamp(usage_count / expected) if expected > 0 else 0.0
        else:
            frequency = _clamp(usage_count / self.config.activity_target_events)

        if window_events:
            idle_days = days_between(window_events[-1].timestamp, window.end)
            recency = _clamp(1.0 - idle_days / window_days)
        else:
            recency = 0.0

        weight = self.config.activity_frequency_weight
        return HEALTH_FACTOR_MAX["activity"] * (weight * frequency + (1.0 - weight) * recency)

    def engagement_factor(self, window_events: list[Event]) -> float:
        """Depth of work on a 0-25 scale."""
        creations = sum(1 for e in window_events if e.type == EventType.CREATION)
        follow_ups = sum(
            1 for e in window_events if e.type in (EventType.EDIT, EventType.COLLABORATION)
        )
        ratio = follow_ups / max(creations, 1)
        return HEALTH_FACTOR_MAX["engagement"] * _clamp(ratio / self.config.engagement_target_ratio)

    def feature_usage_factor(self, window_events: list[Event]) -> float:
        """Breadth of tracked features on a 0-25 scale."""
        tracked = set(self.config.tracked_features)
        used = {e.type for e in window_events} & tracked
        return HEALTH_FACTOR_MAX["feature_usage"] * len(used) / len(tracked)

    def sentiment_factor(self, window_events: list[Event]) -> float:
        """Mean sentiment in [-1, 1] mapped onto 0-15; neutral without data."""
        scores = [
            e.number("sentiment_score")
            for e in window_events
            if e.attributes.get("sentiment_score") is not None
        ]
        if not scores:
            return NEUTRAL_SENTIMENT
        average = _clamp(float(np.mean(scores)), -1.0, 1.0)
        return (average + 1.0) / 2.0 * HEALTH_FACTOR_MAX["sentiment"]

    def payment_factor(self, payment_state: Optional[PaymentState]) -> float:
        """Billing health on a 0-10 scale; full marks without billing data."""
        maximum = HEALTH_FACTOR_MAX["payment"]
        if payment_state is None:
            return float(maximum)
        if payment_state.status == PaymentStatus.CANCELED:
            return 0.0
        score = maximum - payment_state.failed_charges * self.config.failed_charge_penalty
        if payment_state.status == PaymentStatus.PAST_DUE:
            score -= self.config.past_due_penalty
        return float(max(0, score))

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def risk_level(self, score: int) -> RiskLevel:
        cutoffs = self.config.score_cutoffs
        if score < cutoffs.critical:
            return RiskLevel.CRITICAL
        if score < cutoffs.high:
            return RiskLevel.HIGH
        if score < cutoffs.medium:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def trend(self, score: int, previous_score: Optional[int]) -> HealthTrend:
        if previous_score is None:
            return HealthTrend()
        change = score - previous_score
        tolerance = self.config.trend_tolerance
        if change > tolerance:
            direction = TrendDirection.IMPROVING
        elif change < -tolerance:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE
        return HealthTrend(score_change=change, direction=direction, previous_score=previous_score)

    def recommendations(self, factors: HealthFactors) -> list[str]:
        """One recommendation per factor below its configured share of the maximum."""
        fraction = self.config.recommendation_fraction
        return [
            message
            for name, message in FACTOR_RECOMMENDATIONS.items()
            if getattr(factors, name) < fraction * HEALTH_FACTOR_MAX[name]
        ]

    def build_score(
        self,
        entity_id: str,
        factors: HealthFactors,
        computed_at: datetime,
        previous_score: Optional[int] = None,
        extra_recommendations: Iterable[str] = (),
    ) -> HealthScore:
        """Assemble a HealthScore from already-rounded factors."""
        score = factors.total
        return HealthScore(
            entity_id=entity_id,
            score=score,
            factors=factors,
            risk_level=self.risk_level(score),
            trend=self.trend(score, previous_score),
            recommendations=self.recommendations(factors) + list(extra_recommendations),
            computed_at=ensure_utc(computed_at),
        )

    def score_user(
        self,
        entity_id: str,
        window: DateRange,
        events: Iterable[Event],
        payment_state: Optional[PaymentState] = None,
        previous_score: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> HealthScore:
        """
        Score one entity over a window.

        Args:
            entity_id: Entity to score
            window: Scoring window (inclusive)
            events: Event feed; may contain other entities
            payment_state: Billing state, if known
            previous_score: Last stored score, for the trend
            now: Stamped as computed_at; defaults to the window end

        Returns:
            HealthScore with factors, risk tier, trend and recommendations

        Raises:
            InvalidRangeError: If the window is malformed
            InsufficientDataError: If the feed has no events for the entity
        """
        require_valid_range(window.start, window.end)

        entity_events = sorted(
            (e for e in events if e.entity_id == entity_id), key=lambda e: e.timestamp
        )
        if not entity_events:
            raise InsufficientDataError(f"No events for entity {entity_id}", subject=entity_id)

        window_events = [
            e for e in entity_events if window.contains(e.timestamp) and e.type not in _NON_USAGE_TYPES
        ]
        lookback_start = window.start - timedelta(days=self.config.activity_lookback_days)
        prior_events = [
            e
            for e in entity_events
            if lookback_start <= e.timestamp < window.start and e.type not in _NON_USAGE_TYPES
        ]

        raw = {
            "activity": self.activity_factor(window_events, prior_events, window),
            "engagement": self.engagement_factor(window_events),
            "feature_usage": self.feature_usage_factor(window_events),
            "sentiment": self.sentiment_factor(window_events),
            "payment": self.payment_factor(payment_state),
        }
        factors = HealthFactors(
            **{
                name: min(HEALTH_FACTOR_MAX[name], max(0, round_half_up(value)))
                for name, value in raw.items()
            }
        )

        extra = []
        error_count = sum(
            1 for e in entity_events if e.type == EventType.ERROR and window.contains(e.timestamp)
        )
        if error_count > self.config.error_alert_count:
            extra.append(f"User has {error_count} errors - may need support")
        if (
            payment_state is not None
            and payment_state.plan == Plan.FREE
            and factors.total > self.config.upgrade_candidate_score
        ):
            extra.append(UPGRADE_RECOMMENDATION)

        health = self.build_score(
            entity_id,
            factors,
            computed_at=now if now is not None else window.end,
            previous_score=previous_score,
            extra_recommendations=extra,
        )

        self.logger.debug(
            "health_score_computed",
            entity_id=entity_id,
            score=health.score,
            risk_level=health.risk_level.value,
            window_events=len(window_events),
        )
        return health

    def score_users(
        self,
        entity_ids: Iterable[str],
        window: DateRange,
        events: Iterable[Event],
        payment_states: Optional[dict[str, PaymentState]] = None,
        previous_scores: Optional[dict[str, int]] = None,
        now: Optional[datetime] = None,
    ) -> list[HealthScore]:
        """
        Score many entities, skipping unknown ones.

        Returns:
            Health scores sorted lowest first (most at risk first)
        """
        events = list(events)
        payment_states = payment_states or {}
        previous_scores = previous_scores or {}

        scores = []
        for entity_id in sorted(set(entity_ids)):
            try:
                scores.append(
                    self.score_user(
                        entity_id,
                        window,
                        events,
                        payment_state=payment_states.get(entity_id),
                        previous_score=previous_scores.get(entity_id),
                        now=now,
                    )
                )
            except InsufficientDataError as exc:
                self.logger.warning("health_score_skipped", entity_id=entity_id, reason=str(exc))

        scores.sort(key=lambda s: (s.score, s.entity_id))
        self.logger.info(
            "health_scores_computed",
            entities=len(scores),
            at_risk=sum(1 for s in scores if s.score < self.config.score_cutoffs.high),
        )
        return scores

    def at_risk(self, scores: Iterable[HealthScore], limit: Optional[int] = None) -> list[HealthScore]:
        """Scores below the 'high' cutoff, lowest first."""
        risky = sorted(
            (s for s in scores if s.score < self.config.score_cutoffs.high),
            key=lambda s: (s.score, s.entity_id),
        )
        return risky[:limit] if limit is not None else risky

"""
Churn Risk Predictor: rule-based per-user churn risk.

Sums five capped risk contributions into a 0-100 churn risk:

    activity_drop    0-30  drop of activity in the last window vs. the one before
    payment_issues   0-25  failed charges, past-due or canceled billing
    feature_usage    0-20  20 - events_in_window / 10 (less usage, more risk)
    sentiment_trend  0-15  (1 - avg_sentiment) / 2 * 15, neutral 7.5
    error_frequency  0-10  2 points per error in the window

No model training is involved; the weights are fixed heuristics.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import structlog

from pulse.config import EngineConfig
from pulse.models.analytics import ChurnFactors, ChurnPrediction, PaymentState
from pulse.models.enums import ACTIVITY_EVENT_TYPES, EventType, PaymentStatus
from pulse.models.events import Event
from pulse.utils.timeutils import resolve_now

logger = structlog.get_logger()

ACTIVITY_DROP_MAX = 30.0
PAYMENT_ISSUES_MAX = 25.0
FEATURE_USAGE_MAX = 20.0
SENTIMENT_MAX = 15.0
ERROR_FREQUENCY_MAX = 10.0
HIGH_RISK_RECOMMENDATION_THRESHOLD = 80.0


class ChurnRiskPredictor:
    """Heuristic churn risk and predicted churn date per entity."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="churn_predictor")

    def _activity_drop(self, recent: int, previous: int) -> float:
        if previous > 0:
            drop = (previous - recent) / previous * ACTIVITY_DROP_MAX
            return max(0.0, min(ACTIVITY_DROP_MAX, drop))
        return ACTIVITY_DROP_MAX if recent == 0 else 0.0

    def _payment_issues(
        self, payment_state: Optional[PaymentState], failed_payment_events: int
    ) -> float:
        failed = failed_payment_events
        score = 0.0
        if payment_state is not None:
            failed = max(failed, payment_state.failed_charges)
            if payment_state.status == PaymentStatus.CANCELED:
                return PAYMENT_ISSUES_MAX
            if payment_state.status == PaymentStatus.PAST_DUE:
                score += 15.0
        score += 5.0 * failed
        return min(PAYMENT_ISSUES_MAX, score)

    def _sentiment_trend(self, recent_events: list[Event]) -> float:
        scores = [
            e.number("sentiment_score")
            for e in recent_events
            if e.attributes.get("sentiment_score") is not None
        ]
        if not scores:
            return SENTIMENT_MAX / 2
        average = max(-1.0, min(1.0, float(np.mean(scores))))
        return (1.0 - average) / 2.0 * SENTIMENT_MAX

    def predict(
        self,
        entity_id: str,
        events: Iterable[Event],
        payment_state: Optional[PaymentState] = None,
        now: Optional[datetime] = None,
    ) -> ChurnPrediction:
        """
        Predict churn risk for one entity.

        Args:
            entity_id: Entity to assess
            events: Event feed; may contain other entities
            payment_state: Billing state, if known
            now: Reference instant (defaults to current UTC time)

        Returns:
            ChurnPrediction with factors, risk, predicted date and interventions
        """
        now = resolve_now(now)
        window = timedelta(days=self.config.churn_window_days)
        recent_start = now - window
        previous_start = recent_start - window

        entity_events = [e for e in events if e.entity_id == entity_id and e.timestamp <= now]
        recent = [e for e in entity_events if e.timestamp >= recent_start]
        previous = [e for e in entity_events if previous_start <= e.timestamp < recent_start]

        recent_activity = sum(1 for e in recent if e.type in ACTIVITY_EVENT_TYPES)
        previous_activity = sum(1 for e in previous if e.type in ACTIVITY_EVENT_TYPES)
        errors = sum(1 for e in recent if e.type == EventType.ERROR)
        failed_payments = sum(1 for e in recent if e.type == EventType.PAYMENT_FAILED)
        usage = sum(1 for e in recent if e.type not in (EventType.ERROR, EventType.PAYMENT_FAILED))

        factors = ChurnFactors(
            activity_drop=round(self._activity_drop(recent_activity, previous_activity), 2),
            payment_issues=round(self._payment_issues(payment_state, failed_payments), 2),
            feature_usage=round(max(0.0, FEATURE_USAGE_MAX - usage / 10.0), 2),
            sentiment_trend=round(self._sentiment_trend(recent), 2),
            error_frequency=round(min(ERROR_FREQUENCY_MAX, 2.0 * errors), 2),
        )
        churn_risk = round(min(100.0, factors.total), 2)

        predicted_date = None
        if churn_risk > self.config.churn_date_threshold:
            predicted_date = now + timedelta(days=100.0 - churn_risk)

        recommendations = []
        if factors.activity_drop > ACTIVITY_DROP_MAX / 2:
            recommendations.append("User activity has dropped significantly - send re-engagement email")
        if factors.feature_usage > FEATURE_USAGE_MAX / 2:
            recommendations.append("User is not using key features - provide onboarding support")
        if factors.error_frequency > ERROR_FREQUENCY_MAX / 2:
            recommendations.append("User experiencing frequent errors - reach out with support")
        if churn_risk > HIGH_RISK_RECOMMENDATION_THRESHOLD:
            recommendations.append("High churn risk - consider offering discount or upgrade incentive")

        self.logger.debug(
            "churn_risk_predicted",
            entity_id=entity_id,
            churn_risk=churn_risk,
            recent_activity=recent_activity,
            previous_activity=previous_activity,
        )
        return ChurnPrediction(
            entity_id=entity_id,
            churn_risk=churn_risk,
            predicted_churn_date=predicted_date,
            factors=factors,
            intervention_recommendations=recommendations,
        )

    def predict_many(
        self,
        entity_ids: Iterable[str],
        events: Iterable[Event],
        payment_states: Optional[dict[str, PaymentState]] = None,
        now: Optional[datetime] = None,
    ) -> list[ChurnPrediction]:
        """Predictions for many entities, highest risk first."""
        events = list(events)
        payment_states = payment_states or {}
        now = resolve_now(now)
        predictions = [
            self.predict(entity_id, events, payment_states.get(entity_id), now=now)
            for entity_id in sorted(set(entity_ids))
        ]
        predictions.sort(key=lambda p: (-p.churn_risk, p.entity_id))
        return predictions

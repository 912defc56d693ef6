"""
Threshold-based anomaly detection against baselines.

Deviation:
    deviation_pct = (current - expected) / |expected| * 100, or 0 when
    |expected| is below epsilon

Severity (on |deviation_pct|):
    >= critical threshold (default 50) -> critical
    >= warning threshold  (default 25) -> warning
    >= info threshold     (optional)   -> info
    otherwise no anomaly

Metrics tagged higher_is_bad only alert on positive deviations, lower_is_bad
only on negative ones; untagged metrics alert in both directions.

Baselines built from fewer than two points are not checked.
"""

from datetime import datetime
from typing import Optional

import structlog

from pulse.config import EngineConfig
from pulse.models.analytics import Anomaly, Baseline
from pulse.models.enums import MetricDirection, Severity
from pulse.utils.timeutils import resolve_now

from .baseline import MIN_CONFIDENT_SAMPLE

logger = structlog.get_logger()


class AnomalyDetector:
    """
    Compares current metric values with their baselines.

    Side-effect-free: the same inputs and ``now`` always produce the same
    anomalies, ids included.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="anomaly_detector")

    def deviation_pct(self, current: float, expected: float) -> float:
        if abs(expected) < self.config.deviation_epsilon:
            return 0.0
        return (current - expected) / abs(expected) * 100.0

    def classify(self, deviation_pct: float) -> Optional[Severity]:
        """Severity for a deviation, or None when below every threshold."""
        magnitude = abs(deviation_pct)
        thresholds = self.config.severity_thresholds
        if magnitude >= thresholds.critical:
            return Severity.CRITICAL
        if magnitude >= thresholds.warning:
            return Severity.WARNING
        if thresholds.info is not None and magnitude >= thresholds.info:
            return Severity.INFO
        return None

    def _direction_allows(self, metric: str, deviation_pct: float) -> bool:
        direction = self.config.direction_for(metric)
        if direction == MetricDirection.HIGHER_IS_BAD:
            return deviation_pct > 0
        if direction == MetricDirection.LOWER_IS_BAD:
            return deviation_pct < 0
        return True

    def check(
        self,
        metric: str,
        current: float,
        baseline: Baseline,
        now: datetime,
    ) -> Optional[Anomaly]:
        """Anomaly for one metric, or None."""
        deviation = self.deviation_pct(current, baseline.expected_value)
        severity = self.classify(deviation)
        if severity is None or not self._direction_allows(metric, deviation):
            return None

        z_score = None
        if baseline.spread > 0:
            z_score = round((current - baseline.expected_value) / baseline.spread, 4)

        word = "higher" if deviation > 0 else "lower"
        message = (
            f"{metric} is {abs(deviation):.1f}% {word} than {baseline.window_days}-day average "
            f"({baseline.expected_value:.2f} vs {current:.2f})"
        )
        return Anomaly(
            id=f"{metric}-{now.isoformat()}",
            metric=metric,
            current_value=current,
            expected_value=baseline.expected_value,
            deviation_pct=round(deviation, 2),
            severity=severity,
            message=message,
            timestamp=now,
            z_score=z_score,
        )

    def detect_anomalies(
        self,
        current_metrics: dict[str, float],
        baselines: dict[str, Baseline],
        now: Optional[datetime] = None,
    ) -> list[Anomaly]:
        """
        Detect anomalies across all current metrics.

        Args:
            current_metrics: Metric -> current value
            baselines: Metric -> baseline
            now: Timestamp stamped on anomalies (defaults to current UTC time)

        Returns:
            Anomalies sorted by severity (critical first), then metric name
        """
        now = resolve_now(now)
        anomalies = []

        for metric in sorted(current_metrics):
            baseline = baselines.get(metric)
            if baseline is None:
                self.logger.debug("anomaly_check_skipped", metric=metric, reason="no_baseline")
                continue
            if baseline.sample_size < MIN_CONFIDENT_SAMPLE:
                self.logger.debug(
                    "anomaly_check_skipped",
                    metric=metric,
                    reason="low_confidence_baseline",
                    sample_size=baseline.sample_size,
                )
                continue

            anomaly = self.check(metric, float(current_metrics[metric]), baseline, now)
            if anomaly is not None:
                self.logger.info(
                    "anomaly_detected",
                    metric=metric,
                    severity=anomaly.severity.value,
                    deviation_pct=anomaly.deviation_pct,
                    current_value=anomaly.current_value,
                    expected_value=anomaly.expected_value,
                )
                anomalies.append(anomaly)

        anomalies.sort(key=lambda a: (a.severity.rank, a.metric))
        return anomalies

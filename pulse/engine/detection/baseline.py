"""
Baseline estimation over trailing windows.

A baseline is the mean and population standard deviation of a metric's
history over the window ending (exclusive) at ``now``. Sparse windows degrade
instead of failing:

    - 0 points: expected value 0, spread 0, low confidence
    - 1 point: expected value = that point, spread 0, low confidence
    - 2+ points: mean / std (ddof=0)
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import structlog

from pulse.config import EngineConfig
from pulse.models.analytics import Baseline
from pulse.models.events import MetricPoint
from pulse.utils.timeutils import ensure_utc, resolve_now

logger = structlog.get_logger()

MIN_CONFIDENT_SAMPLE = 2


class BaselineEstimator:
    """
    Computes per-metric baselines from history series.

    Attributes:
        config: Engine configuration (default window, per-metric overrides)
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="baseline_estimator")

    def window_sample(
        self,
        history: Iterable[MetricPoint],
        now: datetime,
        window_days: int,
    ) -> np.ndarray:
        """Values with now - window <= timestamp < now, NaNs removed."""
        window_start = now - timedelta(days=window_days)
        values = np.array(
            [p.value for p in history if window_start <= ensure_utc(p.timestamp) < now],
            dtype=float,
        )
        return values[~np.isnan(values)]

    def estimate_baseline(
        self,
        metric_key: str,
        history: Iterable[MetricPoint],
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
    ) -> Baseline:
        """
        Estimate the baseline for one metric.

        Args:
            metric_key: Metric identifier
            history: Observations, in any order
            now: Window end (exclusive); defaults to the current UTC time
            window_days: Explicit window; otherwise the per-metric override
                or the configured default

        Returns:
            Baseline (never raises for sparse history)
        """
        now = resolve_now(now)
        window = window_days or self.config.baseline_window_for(metric_key)
        sample = self.window_sample(history, now, window)
        size = int(sample.size)

        if size == 0:
            expected, spread = 0.0, 0.0
        elif size < MIN_CONFIDENT_SAMPLE:
            expected, spread = float(sample[0]), 0.0
        else:
            expected = float(np.mean(sample))
            spread = float(np.std(sample, ddof=0))

        low_confidence = size < MIN_CONFIDENT_SAMPLE
        if low_confidence:
            self.logger.info(
                "baseline_low_confidence",
                metric=metric_key,
                sample_size=size,
                window_days=window,
            )

        return Baseline(
            metric_key=metric_key,
            expected_value=expected,
            spread=spread,
            sample_size=size,
            computed_at=now,
            window_days=window,
            low_confidence=low_confidence,
        )

    def estimate_many(
        self,
        histories: dict[str, list[MetricPoint]],
        now: Optional[datetime] = None,
    ) -> dict[str, Baseline]:
        """Baselines for several metrics against the same ``now``."""
        now = resolve_now(now)
        return {
            metric: self.estimate_baseline(metric, points, now=now)
            for metric, points in sorted(histories.items())
        }

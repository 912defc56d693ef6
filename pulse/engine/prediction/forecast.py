"""
Forecast Projector: linear projection of daily metrics.

Uses scipy.stats.linregress over the trailing history (x = days since the
first observation) and projects the fitted line to a 30, 60 or 90 day
horizon. The confidence band is sized from the metric's baseline spread and
widens with the square root of the horizon:

    interval = forecast +/- spread * sqrt(horizon / base_window_days)
"""

import math
from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import structlog
from scipy import stats

from pulse.config import EngineConfig
from pulse.engine.detection.baseline import BaselineEstimator
from pulse.errors import InsufficientDataError, InvalidRangeError
from pulse.models.analytics import ConfidenceInterval, Forecast
from pulse.models.enums import ForecastPeriod, ForecastTrend
from pulse.models.events import MetricPoint
from pulse.utils.timeutils import days_between, ensure_utc

logger = structlog.get_logger()


def exponential_smoothing(values: list[float], alpha: float) -> list[float]:
    """Simple exponential smoothing seeded with the first value."""
    smoothed: list[float] = []
    for value in values:
        smoothed.append(value if not smoothed else alpha * value + (1 - alpha) * smoothed[-1])
    return smoothed


class ForecastProjector:
    """
    Projects metric histories over the supported horizons.

    Attributes:
        config: Engine configuration (base window, trend epsilon, smoothing)
        baseline_estimator: Estimator used to size confidence intervals
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        baseline_estimator: Optional[BaselineEstimator] = None,
    ):
        self.config = config or EngineConfig()
        self.baseline_estimator = baseline_estimator or BaselineEstimator(self.config)
        self.logger = logger.bind(component="forecast_projector")

    def _fit(self, x: np.ndarray, y: np.ndarray) -> tuple[float, float]:
        """(slope, intercept); flat through the mean when x has no spread."""
        if len(np.unique(x)) < 2:
            return 0.0, float(np.mean(y))
        result = stats.linregress(x, y)
        return float(result.slope), float(result.intercept)

    def project(
        self,
        metric: str,
        history: list[MetricPoint],
        horizon_days: int,
        now: Optional[datetime] = None,
    ) -> Forecast:
        """
        Project one metric to a horizon.

        Args:
            metric: Metric identifier
            history: Observations, in any order
            horizon_days: 30, 60 or 90
            now: End (exclusive) of the baseline window used for the
                interval; defaults to one day after the last observation

        Returns:
            Forecast with projected value, interval, trend and growth rate

        Raises:
            InvalidRangeError: If the horizon is not supported
            InsufficientDataError: If the history has no usable points
        """
        try:
            period = ForecastPeriod.from_days(horizon_days)
        except ValueError as exc:
            raise InvalidRangeError(str(exc)) from exc

        points = sorted(
            (p for p in history if not math.isnan(p.value)), key=lambda p: p.timestamp
        )
        if not points:
            raise InsufficientDataError(f"No history to forecast {metric}", subject=metric)

        first = points[0].timestamp
        x = np.array([days_between(first, p.timestamp) for p in points], dtype=float)
        values = [p.value for p in points]
        if self.config.forecast_smoothing_alpha is not None:
            values = exponential_smoothing(values, self.config.forecast_smoothing_alpha)
        y = np.array(values, dtype=float)

        slope, intercept = self._fit(x, y)
        forecasted = intercept + slope * (x[-1] + horizon_days)
        mean = float(np.mean(y))

        now = ensure_utc(now) if now is not None else points[-1].timestamp + timedelta(days=1)
        base_window = self.config.forecast_base_window_days
        baseline = self.baseline_estimator.estimate_baseline(
            metric, points, now=now, window_days=base_window
        )
        half_width = baseline.spread * math.sqrt(horizon_days / base_window)

        if abs(slope) > self.config.trend_epsilon * abs(mean):
            trend = ForecastTrend.INCREASING if slope > 0 else ForecastTrend.DECREASING
        else:
            trend = ForecastTrend.STABLE

        growth_rate = slope * horizon_days / abs(mean) * 100.0 if mean != 0 else 0.0

        forecast = Forecast(
            metric=metric,
            period=period,
            forecasted_value=round(forecasted, 4),
            confidence_interval=ConfidenceInterval(
                lower=round(forecasted - half_width, 4),
                upper=round(forecasted + half_width, 4),
            ),
            trend=trend,
            growth_rate=round(growth_rate, 2),
            slope=round(slope, 6),
            sample_size=len(points),
        )
        self.logger.debug(
            "forecast_projected",
            metric=metric,
            period=period.value,
            forecasted_value=forecast.forecasted_value,
            trend=trend.value,
        )
        return forecast

    def project_all(
        self,
        metric: str,
        history: list[MetricPoint],
        now: Optional[datetime] = None,
    ) -> list[Forecast]:
        """Forecasts for every supported horizon, shortest first."""
        return [self.project(metric, history, period.days, now=now) for period in ForecastPeriod]

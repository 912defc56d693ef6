"""
Behavioral analytics engine.

Pure, synchronous computations over in-memory event feeds: aggregation,
cohorts and retention, baselines and anomalies, health scoring, churn
prediction and forecasting, orchestrated by AnalyticsPipeline.
"""

from pulse.engine.aggregator import MetricAggregator
from pulse.engine.cohorts import CohortBuilder, RetentionCalculator
from pulse.engine.detection import AnomalyDetector, BaselineEstimator
from pulse.engine.metric_series import MONITORED_METRICS, DailyMetricSeries
from pulse.engine.pipeline import AnalyticsPipeline
from pulse.engine.prediction import ChurnRiskPredictor, ForecastProjector
from pulse.engine.scoring import HealthScorer

__all__ = [
    "MONITORED_METRICS",
    "AnalyticsPipeline",
    "AnomalyDetector",
    "BaselineEstimator",
    "ChurnRiskPredictor",
    "CohortBuilder",
    "DailyMetricSeries",
    "ForecastProjector",
    "HealthScorer",
    "MetricAggregator",
    "RetentionCalculator",
]

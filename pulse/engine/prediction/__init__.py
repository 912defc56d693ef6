"""Forecasting and churn risk prediction."""

from .churn_predictor import ChurnRiskPredictor
from .forecast import ForecastProjector, exponential_smoothing

__all__ = ["ChurnRiskPredictor", "ForecastProjector", "exponential_smoothing"]

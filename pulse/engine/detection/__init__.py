"""Baseline estimation and anomaly detection."""

from .anomaly import AnomalyDetector
from .baseline import BaselineEstimator

__all__ = ["AnomalyDetector", "BaselineEstimator"]

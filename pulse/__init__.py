"""Pulse: behavioral analytics and prediction engine."""

__version__ = "0.1.0"

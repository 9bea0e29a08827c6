"""Time series analysis."""

from .time_series import Decomposition, TimeSeriesAnalyzer

__all__ = ["TimeSeriesAnalyzer", "Decomposition"]

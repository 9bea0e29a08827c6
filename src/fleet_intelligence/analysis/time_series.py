"""
Time series primitives used by the predictor, cache and monitor.

All functions are stateless and accept any sequence of floats. Degenerate
input (empty, too short, constant) yields an empty or neutral result rather
than an exception.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np


@dataclass
class Decomposition:
    """Trend, seasonal and residual components of a series."""

    trend: List[float] = field(default_factory=list)
    seasonal: List[float] = field(default_factory=list)
    residual: List[float] = field(default_factory=list)


class TimeSeriesAnalyzer:
    """Statistical helpers over plain numeric sequences."""

    @staticmethod
    def moving_average(data: Sequence[float], window: int) -> List[float]:
        """Trailing moving average; one value per complete window."""
        if window < 1 or window > len(data):
            return []
        values = np.asarray(data, dtype=float)
        kernel = np.ones(window) / window
        return np.convolve(values, kernel, mode="valid").tolist()

    @staticmethod
    def exponential_smoothing(data: Sequence[float], alpha: float = 0.3) -> List[float]:
        """Single exponential smoothing seeded with the first value."""
        if len(data) == 0:
            return []
        smoothed = [float(data[0])]
        for value in data[1:]:
            # alpha * x + (1 - alpha) * s, written so constant input stays exact
            smoothed.append(smoothed[-1] + alpha * (float(value) - smoothed[-1]))
        return smoothed

    @staticmethod
    def decompose(data: Sequence[float], period: int = 24) -> Decomposition:
        """
        Split a series into trend, seasonal and residual parts.

        The trend is the moving average over ``period``. The seasonal pattern
        is the mean detrended value per position in the period, where sample
        ``i`` is detrended against trend block ``i // period``; samples whose
        block has no trend value do not contribute. The seasonal and residual
        series have the input length.
        """
        values = np.asarray(data, dtype=float)
        n = len(values)
        if n == 0 or period < 1:
            return Decomposition()

        trend = np.asarray(TimeSeriesAnalyzer.moving_average(values, period), dtype=float)

        pattern = np.zeros(period)
        counts = np.zeros(period)
        for i in range(n):
            block = i // period
            if block < len(trend):
                pattern[i % period] += values[i] - trend[block]
                counts[i % period] += 1
        np.divide(pattern, counts, out=pattern, where=counts > 0)

        seasonal = pattern[np.arange(n) % period]

        if len(trend) > 0:
            blocks = np.minimum(np.arange(n) // period, len(trend) - 1)
            residual = values - trend[blocks] - seasonal
        else:
            residual = values - seasonal

        return Decomposition(
            trend=trend.tolist(),
            seasonal=seasonal.tolist(),
            residual=residual.tolist(),
        )

    @staticmethod
    def detect_anomalies(data: Sequence[float], threshold: float = 2.0) -> List[int]:
        """Indices whose population z-score exceeds ``threshold``."""
        if len(data) == 0:
            return []
        values = np.asarray(data, dtype=float)
        std = values.std()
        if std == 0:
            return []
        z_scores = np.abs(values - values.mean()) / std
        return [int(i) for i in np.flatnonzero(z_scores > threshold)]

    @staticmethod
    def calculate_trend(data: Sequence[float]) -> float:
        """Least-squares slope of the series against x = 1..n."""
        n = len(data)
        if n < 2:
            return 0.0
        y = np.asarray(data, dtype=float)
        x = np.arange(1, n + 1, dtype=float)
        sum_x = x.sum()
        denominator = n * (x * x).sum() - sum_x ** 2
        if denominator == 0:
            return 0.0
        return float((n * (x * y).sum() - sum_x * y.sum()) / denominator)

    @staticmethod
    def calculate_correlation(x: Sequence[float], y: Sequence[float]) -> float:
        """Pearson correlation; 0 for mismatched, short or constant input."""
        if len(x) != len(y) or len(x) < 2:
            return 0.0
        a = np.asarray(x, dtype=float)
        b = np.asarray(y, dtype=float)
        da = a - a.mean()
        db = b - b.mean()
        denominator = np.sqrt((da * da).sum() * (db * db).sum())
        if denominator == 0:
            return 0.0
        return float((da * db).sum() / denominator)

    @staticmethod
    def variance(data: Sequence[float]) -> float:
        """Population variance (0 for empty input)."""
        if len(data) == 0:
            return 0.0
        return float(np.var(np.asarray(data, dtype=float)))

    @staticmethod
    def coefficient_of_variation(data: Sequence[float]) -> float:
        """Population standard deviation over mean (0 when the mean is 0)."""
        if len(data) == 0:
            return 0.0
        values = np.asarray(data, dtype=float)
        mean = values.mean()
        if mean == 0:
            return 0.0
        return float(values.std() / mean)

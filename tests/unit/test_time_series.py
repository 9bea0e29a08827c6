"""
Unit tests for the time series primitives.
"""

import math

import pytest

from fleet_intelligence.analysis.time_series import TimeSeriesAnalyzer


class TestMovingAverage:
    """Test trailing moving averages."""

    def test_one_value_per_complete_window(self):
        data = [1.0, 2.0, 3.0, 4.0, 5.0]
        result = TimeSeriesAnalyzer.moving_average(data, 2)

        assert len(result) == len(data) - 2 + 1
        assert result == pytest.approx([1.5, 2.5, 3.5, 4.5])

    def test_window_longer_than_data(self):
        assert TimeSeriesAnalyzer.moving_average([1.0, 2.0], 3) == []

    def test_invalid_window(self):
        assert TimeSeriesAnalyzer.moving_average([1.0, 2.0], 0) == []


class TestExponentialSmoothing:
    """Test exponential smoothing."""

    def test_seeded_with_first_value(self):
        data = [10.0, 20.0, 30.0]
        result = TimeSeriesAnalyzer.exponential_smoothing(data, alpha=0.5)

        assert len(result) == len(data)
        assert result[0] == 10.0
        assert result == pytest.approx([10.0, 15.0, 22.5])

    def test_empty_input(self):
        assert TimeSeriesAnalyzer.exponential_smoothing([]) == []

    def test_constant_input_stays_constant(self):
        assert TimeSeriesAnalyzer.exponential_smoothing([42.0] * 20) == [42.0] * 20


class TestDecompose:
    """Test seasonal decomposition."""

    def test_components_have_expected_lengths(self):
        data = [math.sin(i / 4) * 10 + 50 for i in range(48)]
        result = TimeSeriesAnalyzer.decompose(data, period=12)

        assert len(result.trend) == 48 - 12 + 1
        assert len(result.seasonal) == 48
        assert len(result.residual) == 48

    def test_short_series_has_no_trend(self):
        result = TimeSeriesAnalyzer.decompose([1.0, 2.0, 3.0], period=24)

        assert result.trend == []
        assert result.seasonal == [0.0, 0.0, 0.0]
        assert result.residual == [1.0, 2.0, 3.0]

    def test_empty_input(self):
        result = TimeSeriesAnalyzer.decompose([], period=24)

        assert result.trend == []
        assert result.seasonal == []
        assert result.residual == []


class TestAnomalies:
    """Test z-score anomaly detection."""

    def test_constant_input_has_no_anomalies(self):
        assert TimeSeriesAnalyzer.detect_anomalies([5.0] * 30) == []

    def test_outlier_is_flagged(self):
        data = [10.0] * 20 + [100.0]
        assert TimeSeriesAnalyzer.detect_anomalies(data, threshold=2.0) == [20]

    def test_empty_input(self):
        assert TimeSeriesAnalyzer.detect_anomalies([]) == []


class TestTrendAndCorrelation:
    """Test slope, correlation and dispersion helpers."""

    def test_trend_of_linear_series(self):
        assert TimeSeriesAnalyzer.calculate_trend([2.0, 4.0, 6.0, 8.0]) == pytest.approx(2.0)

    def test_trend_of_short_series(self):
        assert TimeSeriesAnalyzer.calculate_trend([5.0]) == 0.0

    def test_perfect_correlation(self):
        x = [1.0, 2.0, 3.0, 4.0]
        assert TimeSeriesAnalyzer.calculate_correlation(x, [2.0, 4.0, 6.0, 8.0]) == pytest.approx(1.0)
        assert TimeSeriesAnalyzer.calculate_correlation(x, [8.0, 6.0, 4.0, 2.0]) == pytest.approx(-1.0)

    def test_correlation_degenerate_input(self):
        assert TimeSeriesAnalyzer.calculate_correlation([1.0, 2.0], [1.0]) == 0.0
        assert TimeSeriesAnalyzer.calculate_correlation([1.0, 1.0, 1.0], [1.0, 2.0, 3.0]) == 0.0

    def test_variance_and_coefficient_of_variation(self):
        data = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]

        assert TimeSeriesAnalyzer.variance(data) == pytest.approx(4.0)
        assert TimeSeriesAnalyzer.coefficient_of_variation(data) == pytest.approx(2.0 / 5.0)
        assert TimeSeriesAnalyzer.coefficient_of_variation([0.0, 0.0]) == 0.0

"""
Pytest configuration and fixtures for the fleet intelligence tests.

Provides a virtual clock and scheduler, synthetic metric factories and
stub collaborators shared across the suite.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import pytest

from fleet_intelligence.core.logging import setup_logging
from fleet_intelligence.core.scheduler import ManualClock, ManualScheduler
from fleet_intelligence.prediction.resource_predictor import (
    AnomalyDetection,
    MetricForecast,
    ResourceMetric,
    ResourcePrediction,
)
from fleet_intelligence.scaling.models import ServiceMetrics

# Monday, outside business hours
START = datetime(2024, 1, 1, 6, 0, 0)


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    setup_logging(log_level="DEBUG", environment="testing")


@pytest.fixture
def manual_clock() -> ManualClock:
    """Virtual clock starting at a fixed Monday morning."""
    return ManualClock(START)


@pytest.fixture
def manual_scheduler(manual_clock: ManualClock) -> ManualScheduler:
    """Virtual-time scheduler sharing the manual clock."""
    return ManualScheduler(manual_clock)


@pytest.fixture
def make_metric(manual_clock: ManualClock) -> Callable[..., ResourceMetric]:
    """Factory for predictor samples stamped with the manual clock."""
    def factory(cpu: float = 50.0,
                memory: float = 50.0,
                requests: float = 100.0,
                latency: float = 200.0,
                errors: float = 0.0,
                timestamp: Optional[datetime] = None) -> ResourceMetric:
        return ResourceMetric(
            timestamp=timestamp or manual_clock.now(),
            cpu=cpu,
            memory=memory,
            requests=requests,
            latency=latency,
            errors=errors,
        )
    return factory


@pytest.fixture
def make_service_metrics(manual_clock: ManualClock) -> Callable[..., ServiceMetrics]:
    """Factory for auto scaler samples stamped with the manual clock."""
    def factory(service: str = "github-mcp",
                replicas: int = 2,
                cpu: float = 50.0,
                memory: float = 50.0,
                requests: float = 100.0,
                latency: float = 200.0,
                errors: float = 0.0,
                cost: float = 50.0) -> ServiceMetrics:
        return ServiceMetrics(
            service=service,
            timestamp=manual_clock.now(),
            replicas=replicas,
            cpu=cpu,
            memory=memory,
            requests=requests,
            latency=latency,
            errors=errors,
            cost=cost,
        )
    return factory


@pytest.fixture
def make_prediction(manual_clock: ManualClock) -> Callable[..., ResourcePrediction]:
    """Factory for forecasts with explicit series."""
    def factory(service: str = "github-mcp",
                cpu=50.0,
                memory=50.0,
                requests=100.0,
                latency=200.0,
                confidence: float = 0.9,
                horizon: int = 60,
                anomalies: Optional[List[AnomalyDetection]] = None) -> ResourcePrediction:
        def series(value) -> List[float]:
            if isinstance(value, (int, float)):
                return [float(value)] * horizon
            return [float(v) for v in value]

        return ResourcePrediction(
            service=service,
            predictions=MetricForecast(
                cpu=series(cpu),
                memory=series(memory),
                requests=series(requests),
                latency=series(latency),
            ),
            confidence=confidence,
            horizon_minutes=horizon,
            anomalies=list(anomalies or []),
            generated_at=manual_clock.now(),
        )
    return factory


class StubPredictor:
    """Predictor double that serves prepared forecasts."""

    def __init__(self, predictions: Optional[Dict[str, ResourcePrediction]] = None):
        self.predictions: Dict[str, ResourcePrediction] = dict(predictions or {})
        self.queue: List[Dict[str, ResourcePrediction]] = []

    def predict_all_services(self, horizon_minutes: int = 60) -> Dict[str, ResourcePrediction]:
        if self.queue:
            self.predictions = self.queue.pop(0)
        return dict(self.predictions)

    def predict_usage(self, service: str, horizon_minutes: int = 60) -> Optional[ResourcePrediction]:
        return self.predictions.get(service)


@pytest.fixture
def stub_predictor() -> StubPredictor:
    return StubPredictor()


class FailingController:
    """Infrastructure controller whose every call fails."""

    def __init__(self) -> None:
        self.attempts = 0

    async def scale(self, service: str, replicas: int) -> None:
        self.attempts += 1
        raise RuntimeError("orchestrator API unavailable")

    async def restart(self, service: str) -> None:
        self.attempts += 1
        raise RuntimeError("orchestrator API unavailable")

    async def update_config(self, service: str, changes) -> None:
        self.attempts += 1
        raise RuntimeError("orchestrator API unavailable")


@pytest.fixture
def failing_controller() -> FailingController:
    return FailingController()


def minutes(n: float) -> timedelta:
    return timedelta(minutes=n)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

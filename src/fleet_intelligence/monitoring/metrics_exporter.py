"""
Prometheus gauges for the fleet optimization layer.

The orchestrator pushes a snapshot into the exporter after each integrated
analysis tick; ``render()`` produces the text exposition for scraping.
"""

from typing import Dict, Iterable, Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest


class FleetMetricsExporter:
    """Holds the fleet gauges in a dedicated registry."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "mcp_fleet"):
        self.registry = registry or CollectorRegistry()
        self.namespace = namespace
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self) -> None:
        ns = self.namespace

        self.cache_hit_rate = Gauge(
            f"{ns}_cache_hit_rate",
            "Adaptive cache hit rate (0-1)",
            registry=self.registry,
        )
        self.cache_entries = Gauge(
            f"{ns}_cache_entries",
            "Entries currently held by the adaptive cache",
            registry=self.registry,
        )
        self.scaling_success_rate = Gauge(
            f"{ns}_scaling_success_rate",
            "Share of submitted scaling actions that succeeded (0-1)",
            registry=self.registry,
        )
        self.scaling_events = Gauge(
            f"{ns}_scaling_events",
            "Scaling actions submitted to the infrastructure controller",
            registry=self.registry,
        )
        self.active_alerts = Gauge(
            f"{ns}_active_alerts",
            "Unacknowledged predictive alerts",
            registry=self.registry,
        )
        self.health_score = Gauge(
            f"{ns}_health_score",
            "Latest overall health score per service (0-100)",
            ["service"],
            registry=self.registry,
        )
        self.prediction_confidence = Gauge(
            f"{ns}_prediction_confidence",
            "Latest forecast confidence per service (0-1)",
            ["service"],
            registry=self.registry,
        )
        self.analysis_ticks = Counter(
            f"{ns}_analysis_ticks",
            "Integrated analysis ticks completed",
            registry=self.registry,
        )

    def update(self,
               cache_hit_rate: float,
               cache_entries: int,
               scaling_success_rate: float,
               scaling_events: int,
               active_alerts: int,
               health_scores: Dict[str, float],
               prediction_confidence: Dict[str, float]) -> None:
        """Publish one snapshot of fleet state."""
        self.cache_hit_rate.set(cache_hit_rate)
        self.cache_entries.set(cache_entries)
        self.scaling_success_rate.set(scaling_success_rate)
        self.scaling_events.set(scaling_events)
        self.active_alerts.set(active_alerts)
        self._set_labelled(self.health_score, health_scores.items())
        self._set_labelled(self.prediction_confidence, prediction_confidence.items())
        self.analysis_ticks.inc()

    @staticmethod
    def _set_labelled(gauge: Gauge, values: Iterable) -> None:
        for service, value in values:
            gauge.labels(service=service).set(value)

    def render(self) -> bytes:
        """Text exposition of every gauge in the registry."""
        return generate_latest(self.registry)

    def sample(self, name: str, **labels: str) -> Optional[float]:
        """Current value of one sample, or None when it was never set."""
        return self.registry.get_sample_value(f"{self.namespace}_{name}", labels or None)

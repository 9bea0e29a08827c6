"""
Where the orchestrator gets current service metrics.

Real deployments plug in a poller against their health endpoints; the
synthetic source produces plausible seeded samples for simulation, demos
and model warm-up.
"""

import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import numpy as np

from ..prediction.resource_predictor import ResourceMetric
from ..scaling.models import ServiceMetrics

ReplicaLookup = Callable[[str], Optional[int]]


class MetricsSource(Protocol):
    """Supplies one current sample per service."""

    def collect(self, now: datetime) -> Dict[str, ServiceMetrics]:
        ...


def to_resource_metric(metrics: ServiceMetrics) -> ResourceMetric:
    return ResourceMetric(
        timestamp=metrics.timestamp,
        cpu=metrics.cpu,
        memory=metrics.memory,
        requests=metrics.requests,
        latency=metrics.latency,
        errors=metrics.errors,
    )


class SyntheticMetricsSource:
    """
    Seeded random metrics for a fixed set of services.

    ``replica_lookup`` lets the source report the replica count the
    infrastructure controller last applied; services it does not know
    about report ``default_replicas``.
    """

    def __init__(self,
                 services: Sequence[str],
                 seed: Optional[int] = None,
                 default_replicas: int = 2,
                 replica_lookup: Optional[ReplicaLookup] = None):
        self.services = list(services)
        self.default_replicas = default_replicas
        self.replica_lookup = replica_lookup
        self._rng = np.random.default_rng(seed)

    def _replicas(self, service: str) -> int:
        if self.replica_lookup is not None:
            replicas = self.replica_lookup(service)
            if replicas is not None:
                return replicas
        return self.default_replicas

    def collect(self, now: datetime) -> Dict[str, ServiceMetrics]:
        rng = self._rng
        return {
            service: ServiceMetrics(
                service=service,
                timestamp=now,
                replicas=self._replicas(service),
                cpu=float(40 + rng.random() * 30),
                memory=float(35 + rng.random() * 25),
                requests=float(math.floor(80 + rng.random() * 40)),
                latency=float(200 + rng.random() * 300),
                errors=float(math.floor(rng.random() * 3)),
                cost=float(45 + rng.random() * 10),
            )
            for service in self.services
        }

    def warmup_history(self,
                       end: datetime,
                       samples: int = 144,
                       spacing: timedelta = timedelta(minutes=10)) -> List[ResourceMetric]:
        """
        A day-shaped history ending just before ``end``.

        Base load follows ``50 + 20 * sin(i / 24)`` with uniform noise on
        every metric.
        """
        rng = self._rng
        history = []
        for i in range(samples):
            base = 50 + math.sin(i / 24) * 20
            history.append(ResourceMetric(
                timestamp=end - (samples - i) * spacing,
                cpu=float(np.clip(base + (rng.random() - 0.5) * 20, 0, 100)),
                memory=float(np.clip(base * 0.8 + (rng.random() - 0.5) * 15, 0, 100)),
                requests=float(max(0, math.floor(base * 2 + (rng.random() - 0.5) * 50))),
                latency=float(max(50.0, base * 10 + (rng.random() - 0.5) * 200)),
                errors=float(max(0, math.floor((rng.random() - 0.8) * 10))),
            ))
        return history

"""
Cost and benefit estimation for scaling actions.

The auto scaler only needs two numbers per action; the estimate is a
strategy so deployments can plug in real pricing.
"""

from typing import Protocol


class CostModel(Protocol):
    """Estimates monthly cost and benefit of changing replica counts."""

    def estimate_cost(self, service: str, replica_delta: int) -> float:
        ...

    def estimate_benefit(self, service: str, replica_delta: int) -> float:
        ...


class FlatRateCostModel:
    """Flat per-replica monthly figures."""

    def __init__(self,
                 cost_per_replica: float = 50.0,
                 benefit_per_added_replica: float = 100.0,
                 savings_per_removed_replica: float = 50.0):
        self.cost_per_replica = cost_per_replica
        self.benefit_per_added_replica = benefit_per_added_replica
        self.savings_per_removed_replica = savings_per_removed_replica

    def estimate_cost(self, service: str, replica_delta: int) -> float:
        return abs(replica_delta) * self.cost_per_replica

    def estimate_benefit(self, service: str, replica_delta: int) -> float:
        if replica_delta > 0:
            return replica_delta * self.benefit_per_added_replica
        return abs(replica_delta) * self.savings_per_removed_replica

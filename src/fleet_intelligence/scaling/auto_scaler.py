"""
Multi-policy auto scaler for MCP services.

Evaluates every service with constraints on a fixed interval and proposes
replica changes using one of five policies: reactive thresholds, forecast
driven pre-scaling, a business-hours schedule, cost-filtered reactive
scaling, or a hybrid of all four. Actions are executed through an injected
infrastructure controller and recorded in an append-only event log.
"""

import math
import time
from collections import deque
from dataclasses import fields, replace
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional, Tuple
from uuid import uuid4

import structlog

from ..core.exceptions import ConfigurationError
from ..core.interfaces import InfrastructureController, LoggingInfrastructureController
from ..core.scheduler import Clock, IntervalTask, Scheduler, SystemClock
from ..prediction.resource_predictor import ResourcePredictor
from .cost_model import CostModel, FlatRateCostModel
from .models import (
    AutoScalerConfig,
    ScaleAction,
    ScalingConstraints,
    ScalingDirection,
    ScalingEvent,
    ScalingPerformance,
    ScalingPolicy,
    ScalingResult,
    ServiceMetrics,
    Urgency,
)

logger = structlog.get_logger(__name__)

MAX_METRICS_PER_SERVICE = 1000
HEADROOM = 0.8
SCALE_DOWN_SAFETY_MARGIN = 1.3
BUSINESS_DAYS = range(0, 5)
BUSINESS_HOURS = range(9, 19)


class AutoScaler:
    """
    Policy-driven auto scaler.

    A service is evaluated only when it has both constraints and at least
    one metrics sample, and only outside its cooldown window. The cooldown
    starts when an action is submitted to the controller, whatever the
    outcome.
    """

    def __init__(self,
                 config: Optional[AutoScalerConfig] = None,
                 predictor: Optional[ResourcePredictor] = None,
                 controller: Optional[InfrastructureController] = None,
                 cost_model: Optional[CostModel] = None,
                 clock: Optional[Clock] = None):
        self.config = config or AutoScalerConfig()
        self.config.validate()
        self.predictor = predictor
        self.controller = controller or LoggingInfrastructureController()
        self.cost_model = cost_model or FlatRateCostModel()
        self.clock = clock or SystemClock()

        self._metrics: Dict[str, Deque[ServiceMetrics]] = {}
        self._constraints: Dict[str, ScalingConstraints] = {}
        self._last_scaling_time: Dict[str, datetime] = {}
        self._applied_replicas: Dict[str, Tuple[datetime, int]] = {}
        self._scheduled_actions: Dict[str, ScaleAction] = {}
        self._history: List[ScalingEvent] = []
        self._last_evaluation: Optional[datetime] = None

        self._scheduler: Optional[Scheduler] = None
        self._task: Optional[IntervalTask] = None

        logger.info("AutoScaler initialized",
                    policy=self.config.policy.value,
                    interval=self.config.evaluation_interval_seconds,
                    dry_run=self.config.dry_run)

    # Lifecycle

    def start(self, scheduler: Scheduler) -> None:
        """Register the evaluation loop on the scheduler."""
        self._scheduler = scheduler
        if not self.config.enabled:
            logger.info("Auto scaler disabled; evaluation not scheduled")
            return
        if self._task is not None:
            logger.warning("Auto-scaling already running")
            return
        self._task = scheduler.every(
            "autoscaler-evaluation",
            self.config.evaluation_interval_seconds,
            self._evaluation_tick,
        )

    def _stop_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def destroy(self) -> None:
        try:
            self._stop_task()
        except Exception as e:
            logger.error("Error stopping auto scaler", error=str(e))
        logger.info("Auto scaler destroyed")

    async def _evaluation_tick(self) -> None:
        await self.evaluate_all_services()

    # Inputs

    def add_metrics(self, service: str, metrics: ServiceMetrics) -> None:
        history = self._metrics.get(service)
        if history is None:
            history = deque(maxlen=MAX_METRICS_PER_SERVICE)
            self._metrics[service] = history
        history.append(metrics)

    def set_constraints(self, service: str, constraints: ScalingConstraints) -> None:
        constraints.validate()
        self._constraints[service] = constraints
        logger.info("Scaling constraints set",
                    service=service,
                    min_replicas=constraints.min_replicas,
                    max_replicas=constraints.max_replicas)

    def get_constraints(self, service: str) -> Optional[ScalingConstraints]:
        return self._constraints.get(service)

    def get_current_metrics(self, service: str) -> Optional[ServiceMetrics]:
        history = self._metrics.get(service)
        return history[-1] if history else None

    def current_replicas(self, service: str) -> Optional[int]:
        """Replicas last applied by this scaler, unless a newer sample reports otherwise."""
        metrics = self.get_current_metrics(service)
        applied = self._applied_replicas.get(service)
        if applied is not None and (metrics is None or applied[0] >= metrics.timestamp):
            return applied[1]
        return metrics.replicas if metrics is not None else None

    # Evaluation

    async def evaluate_all_services(self) -> List[ScaleAction]:
        """Evaluate every known service and execute the resulting actions."""
        now = self.clock.now()
        self._last_evaluation = now
        actions: List[ScaleAction] = []

        for service in list(self._metrics):
            try:
                action = await self.evaluate_service(service)
            except Exception as e:
                logger.error("Scaling evaluation failed", service=service, error=str(e))
                action = None

            held = self._scheduled_actions.get(service)
            if action is not None and (action.scheduled_time is None or action.scheduled_time <= now):
                if held is not None:
                    del self._scheduled_actions[service]
                    logger.info("Scheduled scaling action superseded",
                                service=service,
                                urgency=action.urgency.value,
                                target=action.target_replicas)
                actions.append(action)
                continue

            if held is None:
                if action is not None:
                    self._scheduled_actions[service] = action
                    logger.info("Scaling action scheduled",
                                service=service,
                                target=action.target_replicas,
                                scheduled_time=action.scheduled_time.isoformat())
                continue

            if held.scheduled_time <= now:
                due = self._revalidate_scheduled(held)
                if due is not None:
                    actions.append(due)

        if self.config.cost_optimization and len(actions) > 1:
            actions = self.optimize_actions_for_cost(actions)

        for action in actions:
            await self.execute_action(action)

        return actions

    def _revalidate_scheduled(self, held: ScaleAction) -> Optional[ScaleAction]:
        """Rebuild a due scheduled action against the service's current state."""
        service = held.service
        constraints = self._constraints.get(service)
        metrics = self.get_current_metrics(service)
        if constraints is None or metrics is None:
            del self._scheduled_actions[service]
            return None

        if self.in_cooldown(service, constraints):
            logger.debug("Scheduled scaling action deferred by cooldown", service=service)
            return None

        del self._scheduled_actions[service]
        current = self.current_replicas(service)
        target = constraints.clamp(min(held.target_replicas, current + constraints.max_scale_up_step))
        if target <= current:
            logger.info("Scheduled scaling action dropped",
                        service=service,
                        replicas=current,
                        target=held.target_replicas)
            return None

        return self._build_action(
            service, replace(metrics, replicas=current), target,
            reason=held.reason,
            confidence=held.confidence,
            urgency=held.urgency,
            policy=held.policy,
            scheduled_time=held.scheduled_time,
        )

    async def evaluate_service(self, service: str) -> Optional[ScaleAction]:
        """Propose an action for one service, or None."""
        constraints = self._constraints.get(service)
        if constraints is None:
            logger.warning("No scaling constraints defined", service=service)
            return None

        metrics = self.get_current_metrics(service)
        if metrics is None:
            logger.warning("No metrics available", service=service)
            return None

        if self.in_cooldown(service, constraints):
            logger.debug("Service is in cooldown period", service=service)
            return None

        replicas = self.current_replicas(service)
        if replicas != metrics.replicas:
            metrics = replace(metrics, replicas=replicas)

        policy = self.config.policy
        if policy == ScalingPolicy.REACTIVE:
            return self.evaluate_reactive(service, metrics, constraints)
        if policy == ScalingPolicy.PREDICTIVE:
            return self.evaluate_predictive(service, metrics, constraints)
        if policy == ScalingPolicy.SCHEDULED:
            return self.evaluate_scheduled(service, metrics, constraints)
        if policy == ScalingPolicy.COST_AWARE:
            return self.evaluate_cost_aware(service, metrics, constraints)
        return self.evaluate_hybrid(service, metrics, constraints)

    def in_cooldown(self, service: str, constraints: Optional[ScalingConstraints] = None) -> bool:
        constraints = constraints or self._constraints.get(service)
        last = self._last_scaling_time.get(service)
        if constraints is None or last is None:
            return False
        return self.clock.now() - last < constraints.cooldown_period

    def evaluate_reactive(self,
                          service: str,
                          metrics: ServiceMetrics,
                          constraints: ScalingConstraints) -> Optional[ScaleAction]:
        targets = constraints.performance_targets
        cpu, memory, latency = metrics.cpu, metrics.memory, metrics.latency

        if (cpu > targets.max_cpu_utilization
                or memory > targets.max_memory_utilization
                or latency > targets.max_latency_ms):
            target = self._scale_up_target(metrics, constraints)
            if target <= metrics.replicas:
                logger.debug("Scale-up blocked by replica ceiling", service=service, replicas=metrics.replicas)
                return None
            return self._build_action(
                service, metrics, target,
                reason=f"High resource utilization: CPU={cpu:.1f}%, Memory={memory:.1f}%, Latency={latency:.1f}ms",
                confidence=0.9,
                urgency=self.calculate_urgency(metrics, constraints),
                policy=ScalingPolicy.REACTIVE,
            )

        if (cpu < targets.max_cpu_utilization * 0.5
                and memory < targets.max_memory_utilization * 0.5
                and latency < targets.max_latency_ms * 0.7):
            target = self._scale_down_target(metrics, constraints)
            if target < metrics.replicas:
                return self._build_action(
                    service, metrics, target,
                    reason=f"Low resource utilization: CPU={cpu:.1f}%, Memory={memory:.1f}%",
                    confidence=0.8,
                    urgency=Urgency.LOW,
                    policy=ScalingPolicy.REACTIVE,
                )

        return None

    def evaluate_predictive(self,
                            service: str,
                            metrics: ServiceMetrics,
                            constraints: ScalingConstraints) -> Optional[ScaleAction]:
        prediction = None
        if self.predictor is not None:
            prediction = self.predictor.predict_usage(service, self.config.predictive_horizon_minutes)
        if prediction is None:
            logger.warning("No prediction available; falling back to reactive", service=service)
            return self.evaluate_reactive(service, metrics, constraints)

        forecast = prediction.predictions
        targets = constraints.performance_targets
        limits = (
            ("cpu", targets.max_cpu_utilization),
            ("memory", targets.max_memory_utilization),
            ("latency", targets.max_latency_ms),
        )
        breaches = [(name, limit) for name, limit in limits if forecast.peak(name) > limit]
        if not breaches:
            return None

        name, limit = breaches[0]
        spike_index = next(i for i, v in enumerate(forecast.series(name)) if v > limit)
        spike_time = self.clock.now() + timedelta(minutes=spike_index)

        cpu_based = math.ceil(forecast.peak("cpu") / (targets.max_cpu_utilization * HEADROOM))
        memory_based = math.ceil(forecast.peak("memory") / (targets.max_memory_utilization * HEADROOM))
        target = max(cpu_based, memory_based)
        target = constraints.clamp(min(target, metrics.replicas + constraints.max_scale_up_step))
        if target <= metrics.replicas:
            return None

        return self._build_action(
            service, metrics, target,
            reason=(f"Predicted load spike: max {name}={forecast.peak(name):.1f} "
                    f"in {spike_index} minutes"),
            confidence=prediction.confidence,
            urgency=Urgency.MEDIUM,
            policy=ScalingPolicy.PREDICTIVE,
            scheduled_time=spike_time - self.config.scale_ahead,
        )

    def evaluate_scheduled(self,
                           service: str,
                           metrics: ServiceMetrics,
                           constraints: ScalingConstraints) -> Optional[ScaleAction]:
        business_hours = self.is_business_hours(self.clock.now())
        if business_hours:
            target = max(constraints.min_replicas * 2, metrics.replicas)
        else:
            target = constraints.min_replicas
        target = constraints.clamp(target)

        if target == metrics.replicas:
            return None

        return self._build_action(
            service, metrics, target,
            reason=f"Scheduled scaling: {'business hours' if business_hours else 'off hours'}",
            confidence=0.7,
            urgency=Urgency.LOW,
            policy=ScalingPolicy.SCHEDULED,
        )

    def evaluate_cost_aware(self,
                            service: str,
                            metrics: ServiceMetrics,
                            constraints: ScalingConstraints) -> Optional[ScaleAction]:
        action = self.evaluate_reactive(service, metrics, constraints)
        if action is None:
            return None

        if (constraints.cost_budget is not None
                and action.estimated_cost > constraints.cost_budget
                and action.urgency != Urgency.CRITICAL):
            logger.info("Scaling postponed by cost budget",
                        service=service,
                        estimated_cost=action.estimated_cost,
                        cost_budget=constraints.cost_budget)
            return None

        if action.cost_efficiency < self.config.min_cost_efficiency and action.urgency != Urgency.CRITICAL:
            logger.info("Scaling postponed for cost efficiency",
                        service=service,
                        cost_efficiency=round(action.cost_efficiency, 3),
                        estimated_cost=action.estimated_cost,
                        estimated_benefit=action.estimated_benefit)
            return None

        action.policy = ScalingPolicy.COST_AWARE
        return action

    def evaluate_hybrid(self,
                        service: str,
                        metrics: ServiceMetrics,
                        constraints: ScalingConstraints) -> Optional[ScaleAction]:
        reactive = self.evaluate_reactive(service, metrics, constraints)
        if reactive is not None and reactive.urgency == Urgency.CRITICAL:
            reactive.policy = ScalingPolicy.HYBRID
            return reactive

        predictive = self.evaluate_predictive(service, metrics, constraints)
        if predictive is not None and predictive.confidence > self.config.predictive_confidence_threshold:
            return predictive

        scheduled = self.evaluate_scheduled(service, metrics, constraints)
        if scheduled is not None:
            return scheduled

        if reactive is not None:
            return self.evaluate_cost_aware(service, metrics, constraints)

        return None

    # Helpers

    @staticmethod
    def is_business_hours(moment: datetime) -> bool:
        """Monday to Friday, 09:00 through the 18:00 hour."""
        return moment.weekday() in BUSINESS_DAYS and moment.hour in BUSINESS_HOURS

    @staticmethod
    def calculate_urgency(metrics: ServiceMetrics, constraints: ScalingConstraints) -> Urgency:
        targets = constraints.performance_targets
        ratio = max(
            metrics.cpu / targets.max_cpu_utilization,
            metrics.memory / targets.max_memory_utilization,
            metrics.latency / targets.max_latency_ms,
        )
        if ratio > 1.5:
            return Urgency.CRITICAL
        if ratio > 1.2:
            return Urgency.HIGH
        if ratio > 1.0:
            return Urgency.MEDIUM
        return Urgency.LOW

    @staticmethod
    def _scale_up_target(metrics: ServiceMetrics, constraints: ScalingConstraints) -> int:
        targets = constraints.performance_targets
        replicas = metrics.replicas
        cpu_based = math.ceil(replicas * metrics.cpu / (targets.max_cpu_utilization * HEADROOM))
        memory_based = math.ceil(replicas * metrics.memory / (targets.max_memory_utilization * HEADROOM))
        target = min(max(cpu_based, memory_based), replicas + constraints.max_scale_up_step)
        return constraints.clamp(target)

    @staticmethod
    def _scale_down_target(metrics: ServiceMetrics, constraints: ScalingConstraints) -> int:
        replicas = metrics.replicas
        utilization = max(metrics.cpu, metrics.memory) / 100
        target = max(constraints.min_replicas, math.floor(replicas * utilization * SCALE_DOWN_SAFETY_MARGIN))
        target = max(target, replicas - constraints.max_scale_down_step)
        return constraints.clamp(target)

    def _build_action(self,
                      service: str,
                      metrics: ServiceMetrics,
                      target: int,
                      reason: str,
                      confidence: float,
                      urgency: Urgency,
                      policy: ScalingPolicy,
                      scheduled_time: Optional[datetime] = None) -> ScaleAction:
        delta = target - metrics.replicas
        return ScaleAction(
            service=service,
            action=ScalingDirection.SCALE_UP if delta > 0 else ScalingDirection.SCALE_DOWN,
            current_replicas=metrics.replicas,
            target_replicas=target,
            reason=reason,
            confidence=confidence,
            estimated_cost=self.cost_model.estimate_cost(service, delta),
            estimated_benefit=self.cost_model.estimate_benefit(service, delta),
            urgency=urgency,
            policy=policy,
            scheduled_time=scheduled_time,
        )

    @staticmethod
    def optimize_actions_for_cost(actions: List[ScaleAction]) -> List[ScaleAction]:
        """Order actions by cost efficiency weighted by urgency, highest first."""
        ordered = sorted(actions, key=lambda a: a.priority_score, reverse=True)
        logger.info("Optimized scaling actions for cost efficiency", actions=len(ordered))
        return ordered

    # Execution

    async def execute_action(self, action: ScaleAction) -> Optional[ScalingEvent]:
        """Submit an action to the controller and record the outcome."""
        logger.info("Executing scaling action",
                    service=action.service,
                    action=action.action.value,
                    current=action.current_replicas,
                    target=action.target_replicas,
                    reason=action.reason,
                    dry_run=self.config.dry_run)

        if self.config.dry_run:
            logger.info("Dry run: scaling action not executed", service=action.service)
            return None

        submitted_at = self.clock.now()
        self._last_scaling_time[action.service] = submitted_at
        before = self.get_current_metrics(action.service)
        start = time.perf_counter()

        try:
            await self.controller.scale(action.service, action.target_replicas)
            self._applied_replicas[action.service] = (submitted_at, action.target_replicas)
            result, cost_impact, error = ScalingResult.SUCCESS, action.estimated_cost, None
            logger.info("Scaling action completed", service=action.service, replicas=action.target_replicas)
        except Exception as e:
            result, cost_impact, error = ScalingResult.FAILED, 0.0, str(e)
            logger.error("Scaling action failed", service=action.service, error=str(e))

        event = ScalingEvent(
            id=f"scale_{uuid4().hex[:12]}",
            service=action.service,
            timestamp=submitted_at,
            action=action,
            result=result,
            duration_seconds=time.perf_counter() - start,
            cost_impact=cost_impact,
            before_metrics=before,
            error=error,
        )
        self._history.append(event)
        return event

    async def force_scale(self, service: str, target_replicas: int, reason: str) -> Optional[ScalingEvent]:
        """Scale outside of policy evaluation, honouring constraints."""
        metrics = self.get_current_metrics(service)
        constraints = self._constraints.get(service)
        if metrics is None or constraints is None:
            logger.warning("Cannot force scale without metrics and constraints", service=service)
            return None

        current = self.current_replicas(service)
        target = constraints.clamp(target_replicas)
        if target == current:
            logger.info("Forced scale is a no-op", service=service, replicas=target)
            return None

        action = self._build_action(
            service, replace(metrics, replicas=current), target,
            reason=reason,
            confidence=1.0,
            urgency=Urgency.CRITICAL,
            policy=self.config.policy,
        )
        return await self.execute_action(action)

    # Queries

    def get_scaling_history(self, service: Optional[str] = None, limit: int = 50) -> List[ScalingEvent]:
        events = [e for e in self._history if service is None or e.service == service]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def analyze_scaling_performance(self) -> ScalingPerformance:
        events = self._history
        total = len(events)
        successful = [e for e in events if e.result == ScalingResult.SUCCESS]

        per_service: Dict[str, int] = {}
        for event in events:
            per_service[event.service] = per_service.get(event.service, 0) + 1
        top = sorted(per_service.items(), key=lambda item: item[1], reverse=True)[:5]

        scale_ups = [e for e in successful if e.action.action == ScalingDirection.SCALE_UP]

        return ScalingPerformance(
            total_scaling_events=total,
            success_rate=len(successful) / total if total else 0.0,
            avg_scaling_duration=sum(e.duration_seconds for e in events) / total if total else 0.0,
            cost_savings=sum(e.cost_impact for e in events if e.action.action == ScalingDirection.SCALE_DOWN),
            performance_improvement=(sum(e.action.confidence for e in scale_ups) / len(scale_ups)
                                     if scale_ups else 0.0),
            top_scaled_services=[{"service": s, "events": n} for s, n in top],
        )

    def get_status(self) -> Dict[str, Any]:
        interval = timedelta(seconds=self.config.evaluation_interval_seconds)
        return {
            "enabled": self.config.enabled,
            "policy": self.config.policy.value,
            "dry_run": self.config.dry_run,
            "total_services": len(self._constraints),
            "active_services": len(self._metrics),
            "scheduled_actions": len(self._scheduled_actions),
            "last_evaluation": self._last_evaluation,
            "next_evaluation": (self._last_evaluation or self.clock.now()) + interval,
        }

    def update_config(self, **changes: Any) -> AutoScalerConfig:
        known = {f.name for f in fields(AutoScalerConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown auto scaler settings: {sorted(unknown)}")
        if isinstance(changes.get("policy"), str):
            try:
                changes["policy"] = ScalingPolicy(changes["policy"])
            except ValueError as e:
                raise ConfigurationError(f"Unknown scaling policy: {changes['policy']}") from e

        config = replace(self.config, **changes)
        config.validate()
        previous = self.config
        self.config = config

        interval_changed = config.evaluation_interval_seconds != previous.evaluation_interval_seconds
        if self._scheduler is not None:
            if not config.enabled:
                self._stop_task()
            elif self._task is None or interval_changed:
                self._stop_task()
                self.start(self._scheduler)

        logger.info("Auto scaler configuration updated", changes=sorted(changes))
        return config

"""
Predictive monitoring for the MCP fleet.

Every monitoring interval the monitor pulls forecasts for all services,
predicts failures, filters forecast anomalies, scores service health,
derives fleet insights, raises alerts and, when enabled, runs automated
remediation for critical failures.
"""

from collections import deque
from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple
from uuid import uuid4

import structlog

from ..core.exceptions import ConfigurationError, RemediationError
from ..core.interfaces import (
    AlertNotifier,
    InfrastructureController,
    LoggingAlertNotifier,
    LoggingInfrastructureController,
)
from ..core.scheduler import Clock, IntervalTask, Scheduler, SystemClock
from ..prediction.resource_predictor import AnomalyDetection, ResourcePrediction, ResourcePredictor
from ..scaling.auto_scaler import AutoScaler
from ..scaling.models import ScalingResult
from .failure_detectors import FailureDetector
from .health import HealthScorer, SecurityScorer
from .models import (
    ActionType,
    AlertLevel,
    AlertType,
    AnomalyAlertMetadata,
    FailureAlertMetadata,
    FailurePrediction,
    HealthScore,
    HealthTrend,
    Impact,
    InsightType,
    PredictiveAlert,
    PredictiveMonitorConfig,
    RecommendedAction,
    RemediationRecord,
    Severity,
    SystemInsight,
)

logger = structlog.get_logger(__name__)

MAX_ALERTS = 1000
MAX_INSIGHTS = 500
HEALTH_HISTORY_SIZE = 100
REMEDIATION_HISTORY_SIZE = 100
RECENT_INSIGHTS = 10

HEALTHY_SCORE = 70.0
CRITICAL_SCORE = 40.0
DEGRADING_SHARE = 0.3


class PredictiveMonitor:
    """
    Failure prediction, health scoring and alerting over predictor output.

    The monitor owns its health history, alert and insight lists; other
    components read them through the query methods. Remediation goes
    through the injected infrastructure controller, or through the auto
    scaler for scale actions when one is wired.
    """

    def __init__(self,
                 config: Optional[PredictiveMonitorConfig] = None,
                 predictor: Optional[ResourcePredictor] = None,
                 controller: Optional[InfrastructureController] = None,
                 notifier: Optional[AlertNotifier] = None,
                 scaler: Optional[AutoScaler] = None,
                 security_scorer: Optional[SecurityScorer] = None,
                 clock: Optional[Clock] = None):
        self.config = config or PredictiveMonitorConfig()
        self.config.validate()
        self.clock = clock or SystemClock()
        self.predictor = predictor or ResourcePredictor(clock=self.clock)
        self.controller = controller or LoggingInfrastructureController()
        self.notifier = notifier or LoggingAlertNotifier()
        self.scaler = scaler

        self.detector = FailureDetector()
        self.health_scorer = HealthScorer(security_scorer)

        self._health_scores: Dict[str, Deque[HealthScore]] = {}
        self._alerts: List[PredictiveAlert] = []
        self._insights: List[SystemInsight] = []
        self._remediations: Dict[str, Deque[RemediationRecord]] = {}
        self._last_failures: List[FailurePrediction] = []
        self._last_analysis: Optional[datetime] = None

        self._scheduler: Optional[Scheduler] = None
        self._task: Optional[IntervalTask] = None

        logger.info("PredictiveMonitor initialized",
                    interval=self.config.monitoring_interval_seconds,
                    horizon=self.config.prediction_horizon_minutes,
                    auto_remediation=self.config.auto_remediation)

    # Lifecycle

    def start(self, scheduler: Scheduler) -> None:
        """Register the analysis loop on the scheduler."""
        self._scheduler = scheduler
        if not self.config.enabled:
            logger.info("Predictive monitoring disabled; analysis not scheduled")
            return
        if self._task is not None:
            logger.warning("Predictive monitoring already running")
            return
        self._task = scheduler.every(
            "monitor-analysis",
            self.config.monitoring_interval_seconds,
            self._analysis_tick,
        )
        logger.info("Predictive monitoring started",
                    interval=self.config.monitoring_interval_seconds,
                    horizon=self.config.prediction_horizon_minutes)

    def _stop_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def destroy(self) -> None:
        try:
            self._stop_task()
        except Exception as e:
            logger.error("Error stopping predictive monitor", error=str(e))
        logger.info("Predictive monitor destroyed")

    async def _analysis_tick(self) -> None:
        await self.perform_predictive_analysis()

    # Analysis pipeline

    async def perform_predictive_analysis(self) -> Optional[Dict[str, int]]:
        """
        Run one full analysis pass.

        Returns per-stage counts, or None when the pass failed; failures are
        logged and never propagate.
        """
        try:
            predictions = self.predictor.predict_all_services(self.config.prediction_horizon_minutes)
            failures = self.analyze_failure_predictions(predictions)
            anomalies = self.filter_anomalies(predictions)
            scores = self.calculate_health_scores(predictions)
            insights = self.generate_system_insights(predictions, failures)
            alerts = await self.generate_alerts(failures, anomalies)

            remediations = 0
            if self.config.auto_remediation:
                remediations = await self.execute_auto_remediation(failures)

            self._last_failures = failures
            self._last_analysis = self.clock.now()

            summary = {
                "predictions": len(predictions),
                "failures": len(failures),
                "anomalies": len(anomalies),
                "health_scores": len(scores),
                "insights": len(insights),
                "alerts": len(alerts),
                "remediations": remediations,
            }
            logger.debug("Predictive analysis completed", **summary)
            return summary
        except Exception as e:
            logger.error("Predictive analysis failed", error=str(e), exc_info=True)
            return None

    def analyze_failure_predictions(self,
                                    predictions: Dict[str, ResourcePrediction]) -> List[FailurePrediction]:
        failures: List[FailurePrediction] = []
        for service, prediction in predictions.items():
            if prediction.confidence < self.config.min_prediction_confidence:
                continue
            try:
                failures.extend(self.detector.detect(service, prediction))
            except Exception as e:
                logger.error("Failure prediction failed", service=service, error=str(e))
        return failures

    def filter_anomalies(self,
                         predictions: Dict[str, ResourcePrediction]) -> List[Tuple[str, AnomalyDetection]]:
        """Forecast anomalies above the anomaly threshold, tagged with their service."""
        return [
            (service, anomaly)
            for service, prediction in predictions.items()
            for anomaly in prediction.anomalies
            if anomaly.probability > self.config.anomaly_threshold
        ]

    def calculate_health_scores(self, predictions: Dict[str, ResourcePrediction]) -> List[HealthScore]:
        now = self.clock.now()
        scores = []
        for service, prediction in predictions.items():
            history = self._health_scores.get(service)
            if history is None:
                history = deque(maxlen=HEALTH_HISTORY_SIZE)
                self._health_scores[service] = history
            previous = history[-1] if history else None
            score = self.health_scorer.score(service, prediction, previous, now)
            history.append(score)
            scores.append(score)
        return scores

    # Insights

    def generate_system_insights(self,
                                 predictions: Dict[str, ResourcePrediction],
                                 failures: List[FailurePrediction]) -> List[SystemInsight]:
        insights = self._optimization_opportunities(predictions)
        insights.extend(self._risk_insights(failures))
        insights.extend(self._trend_insights(predictions))

        self._insights.extend(insights)
        if len(self._insights) > MAX_INSIGHTS:
            self._insights = self._insights[-MAX_INSIGHTS:]
        return insights

    def _insight(self, prefix: str, **values: Any) -> SystemInsight:
        return SystemInsight(id=f"{prefix}_{uuid4().hex[:12]}", timestamp=self.clock.now(), **values)

    def _optimization_opportunities(self, predictions: Dict[str, ResourcePrediction]) -> List[SystemInsight]:
        insights = []
        for service, prediction in predictions.items():
            forecast = prediction.predictions
            if not forecast.cpu or not forecast.memory:
                continue
            avg_cpu = sum(forecast.cpu) / len(forecast.cpu)
            avg_memory = sum(forecast.memory) / len(forecast.memory)

            if avg_cpu < 30 and avg_memory < 40:
                insights.append(self._insight(
                    f"opt_{service}",
                    type=InsightType.OPTIMIZATION,
                    title=f"Resource over-allocation detected: {service}",
                    description=(f"Service {service} is using only {avg_cpu:.1f}% CPU and "
                                 f"{avg_memory:.1f}% memory on average. Consider scaling down."),
                    impact=Impact.MEDIUM,
                    confidence=prediction.confidence,
                    actionable=True,
                    estimated_value=200.0,
                    implementation_effort=Impact.LOW,
                ))

            if any(latency > 500 for latency in forecast.latency):
                insights.append(self._insight(
                    f"cache_{service}",
                    type=InsightType.OPTIMIZATION,
                    title=f"Cache optimization opportunity: {service}",
                    description=(f"High latency detected in {service}. "
                                 "Consider implementing or optimizing caching strategy."),
                    impact=Impact.HIGH,
                    confidence=0.8,
                    actionable=True,
                    estimated_value=500.0,
                    implementation_effort=Impact.MEDIUM,
                ))
        return insights

    def _risk_insights(self, failures: List[FailurePrediction]) -> List[SystemInsight]:
        critical = {f.service for f in failures if f.severity == Severity.CRITICAL}
        if not critical:
            return []
        return [self._insight(
            "risk_critical",
            type=InsightType.RISK,
            title="Critical failure risks detected",
            description=f"{len(critical)} services have critical failure risks. Immediate attention required.",
            impact=Impact.HIGH,
            confidence=0.9,
            actionable=True,
            estimated_value=-10000.0,
            implementation_effort=Impact.HIGH,
        )]

    def _trend_insights(self, predictions: Dict[str, ResourcePrediction]) -> List[SystemInsight]:
        services = list(predictions)
        degrading = [
            s for s in services
            if self._health_scores.get(s) and self._health_scores[s][-1].trend == HealthTrend.DEGRADING
        ]
        if not degrading or len(degrading) <= len(services) * DEGRADING_SHARE:
            return []
        return [self._insight(
            "trend_degrading",
            type=InsightType.TREND,
            title="System-wide performance degradation trend",
            description=f"{len(degrading)} out of {len(services)} services show degrading performance trends.",
            impact=Impact.HIGH,
            confidence=0.85,
            actionable=True,
            estimated_value=-5000.0,
            implementation_effort=Impact.MEDIUM,
        )]

    # Alerts

    async def generate_alerts(self,
                              failures: List[FailurePrediction],
                              anomalies: List[Tuple[str, AnomalyDetection]]) -> List[PredictiveAlert]:
        now = self.clock.now()
        raised: List[PredictiveAlert] = []

        for failure in failures:
            if failure.probability <= self.config.failure_prediction_threshold:
                continue
            if failure.estimated_time_to_failure is None:
                eta = "with no fixed time to failure"
            else:
                eta = f"in {round(failure.estimated_time_to_failure.total_seconds() / 60)} minutes"
            raised.append(PredictiveAlert(
                id=f"failure_{failure.service}_{uuid4().hex[:12]}",
                service=failure.service,
                type=AlertType.PREDICTION,
                level=AlertLevel.from_severity(failure.severity.value),
                title=f"Failure predicted: {failure.service}",
                message=(f"{failure.failure_type.value} failure predicted with "
                         f"{failure.probability * 100:.1f}% probability {eta}"),
                timestamp=now,
                metadata=FailureAlertMetadata(
                    failure_type=failure.failure_type,
                    root_causes=list(failure.root_causes),
                    recommendations=list(failure.recommendations),
                ),
            ))

        for service, anomaly in anomalies:
            raised.append(PredictiveAlert(
                id=f"anomaly_{anomaly.type.value}_{uuid4().hex[:12]}",
                service=service,
                type=AlertType.ANOMALY,
                level=AlertLevel.from_severity(anomaly.severity.value),
                title=f"Anomaly detected: {anomaly.type.value}",
                message=anomaly.recommendation,
                timestamp=now,
                metadata=AnomalyAlertMetadata(
                    metric=anomaly.metric,
                    probability=anomaly.probability,
                    anomaly_type=anomaly.type,
                ),
            ))

        for alert in raised:
            self._alerts.append(alert)
            await self.send_alert(alert)

        if len(self._alerts) > MAX_ALERTS:
            self._alerts = self._alerts[-MAX_ALERTS:]
        return raised

    async def send_alert(self, alert: PredictiveAlert) -> None:
        """Hand an alert to every configured channel; delivery failures are logged."""
        logger.warning("Predictive alert raised",
                       alert_id=alert.id,
                       service=alert.service,
                       alert_level=alert.level.value,
                       title=alert.title,
                       message=alert.message)
        for channel in self.config.alert_channels:
            try:
                await self.notifier.notify(alert, channel)
            except Exception as e:
                logger.error("Failed to send alert", channel=channel, alert_id=alert.id, error=str(e))

    # Remediation

    async def execute_auto_remediation(self, failures: List[FailurePrediction]) -> int:
        """Run automatable recommendations of severe failures once. Returns attempts made."""
        attempts = 0
        for failure in failures:
            if failure.severity != self.config.remediation_severity:
                continue
            if failure.probability <= self.config.remediation_probability:
                continue

            for action in failure.automatable_actions:
                attempts += 1
                try:
                    result = await self.execute_remediation_action(failure.service, action)
                    self._record_remediation(failure.service, action, result)
                    logger.info("Auto-remediation executed",
                                service=failure.service,
                                action=action.type.value,
                                description=action.description,
                                result=result)
                except Exception as e:
                    self._record_remediation(failure.service, action, "failed", str(e))
                    logger.error("Auto-remediation failed",
                                 service=failure.service,
                                 action=action.type.value,
                                 error=str(e))
        return attempts

    async def execute_remediation_action(self, service: str, action: RecommendedAction) -> str:
        """Perform one remediation step and return its outcome."""
        if action.type == ActionType.RESTART:
            await self.controller.restart(service)
            return "success"

        if action.type == ActionType.SCALE:
            return await self._remediate_by_scaling(service, action)

        if action.type == ActionType.CONFIG:
            await self.controller.update_config(service, {"remediation": action.description})
            return "success"

        if action.type == ActionType.ALERT:
            logger.warning("Service flagged for close monitoring", service=service, reason=action.description)
            return "success"

        raise RemediationError(service, action.type.value, "action cannot be automated")

    async def _remediate_by_scaling(self, service: str, action: RecommendedAction) -> str:
        if self.scaler is None:
            logger.warning("No auto scaler wired; scale remediation skipped", service=service)
            return "skipped"

        metrics = self.scaler.get_current_metrics(service)
        constraints = self.scaler.get_constraints(service)
        if metrics is None or constraints is None:
            logger.warning("Scale remediation lacks metrics or constraints", service=service)
            return "skipped"

        event = await self.scaler.force_scale(
            service,
            self.scaler.current_replicas(service) + constraints.max_scale_up_step,
            reason=f"Auto-remediation: {action.description}",
        )
        if event is None:
            return "skipped"
        if event.result == ScalingResult.FAILED:
            raise RemediationError(service, action.type.value, event.error or "scaling failed")
        return "success"

    def _record_remediation(self,
                            service: str,
                            action: RecommendedAction,
                            result: str,
                            error: Optional[str] = None) -> None:
        history = self._remediations.get(service)
        if history is None:
            history = deque(maxlen=REMEDIATION_HISTORY_SIZE)
            self._remediations[service] = history
        history.append(RemediationRecord(
            service=service,
            timestamp=self.clock.now(),
            action=action,
            result=result,
            error=error,
        ))

    # Queries

    def latest_health_scores(self) -> List[HealthScore]:
        return [scores[-1] for scores in self._health_scores.values() if scores]

    def get_dashboard_data(self) -> Dict[str, Any]:
        latest = self.latest_health_scores()
        recent = sorted(self._insights, key=lambda i: i.timestamp, reverse=True)[:RECENT_INSIGHTS]

        return {
            "health_scores": latest,
            "active_alerts": self.get_alerts(),
            "recent_insights": recent,
            "system_overview": {
                "total_services": len(latest),
                "healthy_services": sum(1 for s in latest if s.overall > HEALTHY_SCORE),
                "at_risk_services": sum(1 for s in latest if CRITICAL_SCORE < s.overall <= HEALTHY_SCORE),
                "critical_services": sum(1 for s in latest if s.overall <= CRITICAL_SCORE),
            },
        }

    def get_alerts(self, include_acknowledged: bool = False) -> List[PredictiveAlert]:
        return [a for a in self._alerts if include_acknowledged or not a.acknowledged]

    def get_insights(self) -> List[SystemInsight]:
        return list(self._insights)

    def acknowledge_alert(self, alert_id: str) -> bool:
        for alert in self._alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                logger.info("Alert acknowledged", alert_id=alert_id)
                return True
        return False

    def get_health_history(self, service: str) -> List[HealthScore]:
        return list(self._health_scores.get(service, ()))

    def get_remediation_history(self, service: Optional[str] = None) -> List[RemediationRecord]:
        if service is not None:
            return list(self._remediations.get(service, ()))
        records = [r for history in self._remediations.values() for r in history]
        return sorted(records, key=lambda r: r.timestamp)

    @property
    def last_failures(self) -> List[FailurePrediction]:
        return list(self._last_failures)

    @property
    def last_analysis(self) -> Optional[datetime]:
        return self._last_analysis

    def update_config(self, **changes: Any) -> PredictiveMonitorConfig:
        known = {f.name for f in fields(PredictiveMonitorConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown monitor settings: {sorted(unknown)}")

        config = replace(self.config, **changes)
        config.validate()
        previous = self.config
        self.config = config

        interval_changed = config.monitoring_interval_seconds != previous.monitoring_interval_seconds
        if self._scheduler is not None:
            if not config.enabled:
                self._stop_task()
            elif self._task is None or interval_changed:
                self._stop_task()
                self.start(self._scheduler)

        logger.info("Predictive monitor configuration updated", changes=sorted(changes))
        return config

"""
Unit tests for failure detection, health scoring and the predictive monitor.
"""

from datetime import timedelta

import pytest

from fleet_intelligence.core.exceptions import ConfigurationError, RemediationError
from fleet_intelligence.core.interfaces import LoggingAlertNotifier, LoggingInfrastructureController
from fleet_intelligence.monitoring import (
    ActionType,
    AlertLevel,
    AlertType,
    AnomalyAlertMetadata,
    FailureAlertMetadata,
    FailureDetector,
    FailurePrediction,
    FailureType,
    HealthScorer,
    HealthTrend,
    InsightType,
    PredictiveMonitor,
    PredictiveMonitorConfig,
    RecommendedAction,
    Severity,
    StaticSecurityScorer,
    estimate_time_to_failure,
)
from fleet_intelligence.monitoring.failure_detectors import extract_signature
from fleet_intelligence.prediction.resource_predictor import (
    AnomalyDetection,
    AnomalySeverity,
    AnomalyType,
)
from fleet_intelligence.scaling import AutoScaler, ScalingConstraints


@pytest.fixture
def controller():
    return LoggingInfrastructureController()


@pytest.fixture
def notifier():
    return LoggingAlertNotifier()


@pytest.fixture
def make_monitor(manual_clock, stub_predictor, controller, notifier):
    def factory(**kwargs):
        kwargs.setdefault("controller", controller)
        kwargs.setdefault("notifier", notifier)
        config = kwargs.pop("config", None) or PredictiveMonitorConfig()
        return PredictiveMonitor(config=config, predictor=stub_predictor, clock=manual_clock, **kwargs)
    return factory


@pytest.fixture
def make_anomaly(manual_clock):
    def factory(probability=0.9, severity=AnomalySeverity.HIGH, anomaly_type=AnomalyType.PATTERN,
                metric="latency"):
        return AnomalyDetection(
            type=anomaly_type,
            metric=metric,
            severity=severity,
            probability=probability,
            expected_time=manual_clock.now() + timedelta(minutes=15),
            recommendation="Immediate attention required - performance degradation",
        )
    return factory


class TestTimeToFailure:
    """Test linear time-to-failure estimates."""

    def test_rising_series(self):
        assert estimate_time_to_failure([10.0, 20.0, 30.0], 50.0) == timedelta(minutes=4)

    def test_flat_or_falling_series(self):
        assert estimate_time_to_failure([50.0, 50.0, 50.0], 95.0) is None
        assert estimate_time_to_failure([30.0, 20.0, 10.0], 95.0) is None
        assert estimate_time_to_failure([], 95.0) is None

    def test_already_crossed(self):
        assert estimate_time_to_failure([100.0, 110.0], 95.0) == timedelta(0)


class TestFailureDetector:
    """Test the individual failure detectors."""

    def test_cpu_exhaustion(self, make_prediction):
        prediction = make_prediction(cpu=99.0)

        failures = FailureDetector().detect("github-mcp", prediction)

        assert len(failures) == 1
        failure = failures[0]
        assert failure.failure_type == FailureType.RESOURCE
        assert failure.severity == Severity.CRITICAL
        assert failure.probability == pytest.approx(0.95)
        assert failure.estimated_time_to_failure is None
        assert [a.type for a in failure.automatable_actions] == [ActionType.SCALE]

    def test_sustained_cpu_is_high(self, make_prediction):
        failures = FailureDetector().detect("github-mcp", make_prediction(cpu=92.0))

        assert failures[0].severity == Severity.HIGH

    def test_memory_leak(self, make_prediction):
        memory = [60.0 + 0.8 * i for i in range(60)]

        failures = FailureDetector().detect("github-mcp", make_prediction(memory=memory))

        assert len(failures) == 1
        failure = failures[0]
        assert failure.root_causes[0] == "Memory leak detected"
        assert failure.severity == Severity.HIGH
        assert failure.probability == pytest.approx(0.9)
        assert failure.confidence == pytest.approx(0.81)
        assert failure.estimated_time_to_failure.total_seconds() == pytest.approx(43.75 * 60)
        assert [a.type for a in failure.automatable_actions] == [ActionType.RESTART, ActionType.SCALE]

    def test_latency_degradation(self, make_prediction):
        failures = FailureDetector().detect("github-mcp", make_prediction(latency=2500.0))

        assert len(failures) == 1
        assert failures[0].failure_type == FailureType.PERFORMANCE
        assert failures[0].probability == pytest.approx(2500 / 3000)
        assert failures[0].severity == Severity.HIGH

    def test_quiet_forecast(self, make_prediction):
        assert FailureDetector().detect("github-mcp", make_prediction()) == []

    def test_detected_failures_are_recorded(self, make_prediction):
        detector = FailureDetector()
        detector.detect("github-mcp", make_prediction(cpu=99.0))

        assert len(detector.history("github-mcp")) == 1

    def record_past_failures(self, detector, signature, count=3):
        for _ in range(count):
            detector.record(FailurePrediction(
                service="github-mcp",
                failure_type=FailureType.RESOURCE,
                probability=0.9,
                confidence=0.9,
                estimated_time_to_failure=None,
                severity=Severity.HIGH,
                signature=signature,
            ))

    def test_historical_pattern_match(self, make_prediction):
        detector = FailureDetector()
        self.record_past_failures(detector, [float(i) for i in range(10)])
        prediction = make_prediction(cpu=[2.0 * i for i in range(60)])

        failure = detector.detect_historical_pattern("github-mcp", prediction, extract_signature(prediction))

        assert failure.failure_type == FailureType.DEPENDENCY
        assert failure.probability == pytest.approx(0.72)
        assert failure.historical_similarity == pytest.approx(1.0)
        assert failure.severity == Severity.MEDIUM

    def test_pattern_needs_history(self, make_prediction):
        detector = FailureDetector()
        self.record_past_failures(detector, [float(i) for i in range(10)], count=2)
        prediction = make_prediction(cpu=[2.0 * i for i in range(60)])

        assert detector.detect_historical_pattern("github-mcp", prediction, extract_signature(prediction)) is None

    def test_mismatched_signature_length(self, make_prediction):
        detector = FailureDetector()
        self.record_past_failures(detector, [1.0, 2.0, 3.0, 4.0, 5.0])
        prediction = make_prediction(cpu=[2.0 * i for i in range(60)])

        assert detector.detect_historical_pattern("github-mcp", prediction, extract_signature(prediction)) is None

    def test_historical_similarity_attached(self, make_prediction):
        detector = FailureDetector()
        self.record_past_failures(detector, [float(i) for i in range(10)], count=1)
        prediction = make_prediction(cpu=[90.0 + i for i in range(60)])

        failure = detector.detect_cpu_exhaustion("github-mcp", prediction, extract_signature(prediction))

        assert failure.historical_similarity == pytest.approx(1.0)


class TestHealthScorer:
    """Test health components and trends."""

    def test_quiet_service(self, make_prediction, manual_clock):
        score = HealthScorer().score("github-mcp", make_prediction(), None, manual_clock.now())

        assert score.components.performance == 100.0
        assert score.components.reliability == pytest.approx(90.0)
        assert score.components.security == 85.0
        assert score.overall == pytest.approx(95.0)
        assert score.trend == HealthTrend.STABLE
        assert score.risk_factors == []

    def test_stressed_service(self, make_prediction, make_anomaly, manual_clock):
        prediction = make_prediction(cpu=99.0, memory=95.0, latency=1200.0, anomalies=[make_anomaly()])

        score = HealthScorer(StaticSecurityScorer(100.0)).score("github-mcp", prediction, None,
                                                                manual_clock.now())

        assert score.components.performance == pytest.approx(30.0)
        assert score.components.availability == 90.0
        assert score.components.scalability == 40.0
        assert score.risk_factors == [
            "High CPU utilization",
            "High memory usage",
            "High latency",
            "Anomalies detected",
        ]

    def test_trend_against_previous(self, make_prediction, manual_clock):
        scorer = HealthScorer()
        healthy = scorer.score("github-mcp", make_prediction(), None, manual_clock.now())

        worse = scorer.score("github-mcp", make_prediction(cpu=99.0, memory=95.0), healthy, manual_clock.now())
        better = scorer.score("github-mcp", make_prediction(), worse, manual_clock.now())
        same = scorer.score("github-mcp", make_prediction(), better, manual_clock.now())

        assert worse.trend == HealthTrend.DEGRADING
        assert better.trend == HealthTrend.IMPROVING
        assert same.trend == HealthTrend.STABLE


class TestAnalysisPipeline:
    """Test one monitoring pass end to end."""

    @pytest.mark.asyncio
    async def test_critical_cpu_raises_alert(self, make_monitor, stub_predictor, make_prediction, notifier):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0)}
        monitor = make_monitor()

        summary = await monitor.perform_predictive_analysis()

        assert summary["predictions"] == 1
        assert summary["failures"] == 1
        assert summary["alerts"] == 1
        alert = monitor.get_alerts()[0]
        assert alert.type == AlertType.PREDICTION
        assert alert.level == AlertLevel.CRITICAL
        assert alert.service == "github-mcp"
        assert "with no fixed time to failure" in alert.message
        assert isinstance(alert.metadata, FailureAlertMetadata)
        assert [d["channel"] for d in notifier.delivered] == ["email", "slack"]

    @pytest.mark.asyncio
    async def test_low_confidence_forecast_is_not_analyzed(self, make_monitor, stub_predictor, make_prediction):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0, confidence=0.3)}
        monitor = make_monitor()

        summary = await monitor.perform_predictive_analysis()

        assert summary["failures"] == 0
        assert summary["health_scores"] == 1

    @pytest.mark.asyncio
    async def test_anomaly_alert_attributed_to_service(self, make_monitor, stub_predictor, make_prediction,
                                                       make_anomaly):
        stub_predictor.predictions = {
            "mem0-mcp": make_prediction(service="mem0-mcp", anomalies=[make_anomaly(), make_anomaly(0.6)]),
        }
        monitor = make_monitor()

        summary = await monitor.perform_predictive_analysis()

        assert summary["anomalies"] == 1
        alert = monitor.get_alerts()[0]
        assert alert.type == AlertType.ANOMALY
        assert alert.service == "mem0-mcp"
        assert alert.level == AlertLevel.ERROR
        assert isinstance(alert.metadata, AnomalyAlertMetadata)
        assert alert.metadata.metric == "latency"

    @pytest.mark.asyncio
    async def test_failing_notifier_does_not_stop_analysis(self, make_monitor, stub_predictor,
                                                           make_prediction):
        class BrokenNotifier:
            async def notify(self, alert, channel):
                raise RuntimeError("smtp relay down")

        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0)}
        monitor = make_monitor(notifier=BrokenNotifier())

        summary = await monitor.perform_predictive_analysis()

        assert summary["alerts"] == 1
        assert len(monitor.get_alerts()) == 1

    @pytest.mark.asyncio
    async def test_failing_predictor_returns_none(self, manual_clock):
        class BrokenPredictor:
            def predict_all_services(self, horizon_minutes=60):
                raise RuntimeError("model store unavailable")

        monitor = PredictiveMonitor(predictor=BrokenPredictor(), clock=manual_clock)

        assert await monitor.perform_predictive_analysis() is None
        assert monitor.last_analysis is None

    @pytest.mark.asyncio
    async def test_degrading_health_trend(self, make_monitor, stub_predictor, make_prediction):
        for i in range(9):
            stub_predictor.queue.append({"github-mcp": make_prediction(cpu=72.0 + 2 * i)})
        stub_predictor.queue.append({"github-mcp": make_prediction(cpu=99.0, memory=95.0)})
        monitor = make_monitor()

        for _ in range(10):
            await monitor.perform_predictive_analysis()

        history = monitor.get_health_history("github-mcp")
        overall = [s.overall for s in history]
        assert len(history) == 10
        assert all(a > b for a, b in zip(overall, overall[1:]))
        assert overall[-2] - overall[-1] > 5
        assert history[-1].trend == HealthTrend.DEGRADING

    @pytest.mark.asyncio
    async def test_system_insights(self, make_monitor, stub_predictor, make_prediction):
        stub_predictor.predictions = {
            "idle": make_prediction(service="idle", cpu=20.0, memory=30.0),
            "slow": make_prediction(service="slow", latency=600.0),
            "hot": make_prediction(service="hot", cpu=99.0),
        }
        monitor = make_monitor()

        await monitor.perform_predictive_analysis()

        titles = [i.title for i in monitor.get_insights()]
        assert "Resource over-allocation detected: idle" in titles
        assert "Cache optimization opportunity: slow" in titles
        assert "Critical failure risks detected" in titles
        assert {i.type for i in monitor.get_insights()} == {InsightType.OPTIMIZATION, InsightType.RISK}

    @pytest.mark.asyncio
    async def test_dashboard_overview(self, make_monitor, stub_predictor, make_prediction, make_anomaly):
        stub_predictor.predictions = {
            "healthy": make_prediction(service="healthy"),
            "at-risk": make_prediction(service="at-risk", cpu=99.0, memory=95.0, confidence=0.5),
            "critical": make_prediction(service="critical", cpu=150.0, memory=150.0, latency=5000.0,
                                        confidence=0.0, anomalies=[make_anomaly(0.5)] * 10),
        }
        monitor = make_monitor()

        await monitor.perform_predictive_analysis()
        overview = monitor.get_dashboard_data()["system_overview"]

        assert overview == {
            "total_services": 3,
            "healthy_services": 1,
            "at_risk_services": 1,
            "critical_services": 1,
        }

    @pytest.mark.asyncio
    async def test_acknowledge_alert(self, make_monitor, stub_predictor, make_prediction):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0)}
        monitor = make_monitor()
        await monitor.perform_predictive_analysis()
        alert_id = monitor.get_alerts()[0].id

        assert monitor.acknowledge_alert(alert_id) is True
        assert monitor.acknowledge_alert("missing") is False
        assert monitor.get_alerts() == []
        assert len(monitor.get_alerts(include_acknowledged=True)) == 1
        assert monitor.get_dashboard_data()["active_alerts"] == []


class TestRemediation:
    """Test automated remediation."""

    def make_scaler(self, controller, clock, make_service_metrics):
        scaler = AutoScaler(controller=controller, clock=clock)
        scaler.set_constraints("github-mcp", ScalingConstraints())
        scaler.add_metrics("github-mcp", make_service_metrics(replicas=2, cpu=99.0))
        return scaler

    @pytest.mark.asyncio
    async def test_scale_remediation_through_scaler(self, make_monitor, stub_predictor, make_prediction,
                                                    make_service_metrics, controller, manual_clock):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0)}
        scaler = self.make_scaler(controller, manual_clock, make_service_metrics)
        monitor = make_monitor(config=PredictiveMonitorConfig(auto_remediation=True), scaler=scaler)

        summary = await monitor.perform_predictive_analysis()

        assert summary["remediations"] == 1
        assert controller.replicas["github-mcp"] == 5
        record = monitor.get_remediation_history("github-mcp")[0]
        assert record.result == "success"
        assert record.action.type == ActionType.SCALE

    @pytest.mark.asyncio
    async def test_scale_remediation_skipped_without_scaler(self, make_monitor, stub_predictor,
                                                            make_prediction):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0)}
        monitor = make_monitor(config=PredictiveMonitorConfig(auto_remediation=True))

        await monitor.perform_predictive_analysis()

        assert [r.result for r in monitor.get_remediation_history()] == ["skipped"]

    @pytest.mark.asyncio
    async def test_failed_scale_is_recorded(self, make_monitor, stub_predictor, make_prediction,
                                            make_service_metrics, failing_controller, manual_clock):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=99.0)}
        scaler = self.make_scaler(failing_controller, manual_clock, make_service_metrics)
        monitor = make_monitor(config=PredictiveMonitorConfig(auto_remediation=True), scaler=scaler)

        await monitor.perform_predictive_analysis()

        record = monitor.get_remediation_history("github-mcp")[0]
        assert record.result == "failed"
        assert "unavailable" in record.error

    @pytest.mark.asyncio
    async def test_high_severity_is_not_remediated(self, make_monitor, stub_predictor, make_prediction):
        stub_predictor.predictions = {"github-mcp": make_prediction(cpu=92.0)}
        monitor = make_monitor(config=PredictiveMonitorConfig(auto_remediation=True))

        summary = await monitor.perform_predictive_analysis()

        assert summary["remediations"] == 0

    def action(self, action_type):
        return RecommendedAction(
            type=action_type,
            priority=1,
            description="remediate",
            estimated_effectiveness=0.9,
            estimated_duration=timedelta(minutes=1),
            automatable=True,
        )

    @pytest.mark.asyncio
    async def test_restart_and_config_use_controller(self, make_monitor, controller):
        monitor = make_monitor()

        assert await monitor.execute_remediation_action("github-mcp", self.action(ActionType.RESTART)) == "success"
        assert await monitor.execute_remediation_action("github-mcp", self.action(ActionType.CONFIG)) == "success"
        assert await monitor.execute_remediation_action("github-mcp", self.action(ActionType.ALERT)) == "success"

        assert [c["op"] for c in controller.calls] == ["restart", "update_config"]

    @pytest.mark.asyncio
    async def test_investigate_cannot_be_automated(self, make_monitor):
        monitor = make_monitor()

        with pytest.raises(RemediationError):
            await monitor.execute_remediation_action("github-mcp", self.action(ActionType.INVESTIGATE))


class TestMonitorLifecycle:
    """Test scheduling and configuration."""

    @pytest.mark.asyncio
    async def test_start_runs_analysis(self, make_monitor, manual_scheduler, stub_predictor, make_prediction):
        stub_predictor.predictions = {"github-mcp": make_prediction()}
        monitor = make_monitor()
        monitor.start(manual_scheduler)

        await manual_scheduler.advance(30)

        assert monitor.last_analysis is not None
        assert len(monitor.latest_health_scores()) == 1

        monitor.destroy()
        assert manual_scheduler.tasks == []

    def test_disabled_monitor_does_not_schedule(self, make_monitor, manual_scheduler):
        monitor = make_monitor(config=PredictiveMonitorConfig(enabled=False))
        monitor.start(manual_scheduler)

        assert manual_scheduler.tasks == []

    def test_update_config_validates(self, make_monitor):
        monitor = make_monitor()

        with pytest.raises(ConfigurationError):
            monitor.update_config(anomaly_threshold=1.5)
        with pytest.raises(ConfigurationError):
            monitor.update_config(pager="on")

        assert monitor.update_config(auto_remediation=True).auto_remediation is True

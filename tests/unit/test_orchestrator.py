"""
Unit tests for the optimization orchestrator.
"""

import pytest

from fleet_intelligence.config.settings import MonitorSettings, Settings
from fleet_intelligence.core.interfaces import LoggingAlertNotifier, LoggingInfrastructureController
from fleet_intelligence.integrations import WebhookAlertNotifier
from fleet_intelligence.orchestration import OptimizationOrchestrator

TASKS = [
    "autoscaler-evaluation",
    "cache-performance",
    "cache-warming",
    "integrated-analysis",
    "monitor-analysis",
]


@pytest.fixture
def settings():
    return Settings(environment="testing")


@pytest.fixture
def controller():
    return LoggingInfrastructureController()


@pytest.fixture
def orchestrator(settings, manual_scheduler, manual_clock, controller):
    return OptimizationOrchestrator.build(settings, scheduler=manual_scheduler, clock=manual_clock,
                                          controller=controller)


class TestBuild:
    """Test component wiring."""

    def test_components_share_predictor_and_scaler(self, orchestrator):
        assert orchestrator.scaler.predictor is orchestrator.predictor
        assert orchestrator.monitor.predictor is orchestrator.predictor
        assert orchestrator.monitor.scaler is orchestrator.scaler
        assert orchestrator.cache.load_provider == orchestrator.predictor.current_system_load
        assert orchestrator.cache.confidence_provider == orchestrator.predictor.mean_confidence

    def test_log_notifier_without_webhooks(self, orchestrator):
        assert isinstance(orchestrator.monitor.notifier, LoggingAlertNotifier)

    def test_webhook_notifier_when_configured(self, manual_scheduler, manual_clock):
        settings = Settings(monitor=MonitorSettings(slack_webhook_url="https://hooks.example.com/fleet"))

        orchestrator = OptimizationOrchestrator.build(settings, scheduler=manual_scheduler, clock=manual_clock)

        assert isinstance(orchestrator.monitor.notifier, WebhookAlertNotifier)
        assert orchestrator.monitor.notifier.webhooks == {"slack": "https://hooks.example.com/fleet"}

    def test_synthetic_source_reports_applied_replicas(self, orchestrator, controller, manual_clock):
        controller.replicas["github-mcp"] = 5

        collected = orchestrator.metrics_source.collect(manual_clock.now())

        assert collected["github-mcp"].replicas == 5
        assert collected["npm-sentinel"].replicas == 2


class TestInitialize:
    """Test startup."""

    @pytest.mark.asyncio
    async def test_initialize_seeds_and_schedules(self, orchestrator, manual_scheduler, settings):
        await orchestrator.initialize()

        assert orchestrator.initialized
        assert sorted(t.name for t in manual_scheduler.tasks) == TASKS
        for service in settings.orchestrator.services:
            assert orchestrator.scaler.get_constraints(service) is not None
        for service in settings.orchestrator.warmup_services:
            assert len(orchestrator.predictor.get_history(service)) == 144
        assert orchestrator.predictor.get_history("code-runner") == []

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, orchestrator, manual_scheduler):
        await orchestrator.initialize()
        await orchestrator.initialize()

        assert len(manual_scheduler.tasks) == len(TASKS)
        assert len(orchestrator.predictor.get_history("github-mcp")) == 144

    @pytest.mark.asyncio
    async def test_warmed_up_service_can_be_forecast(self, orchestrator):
        await orchestrator.initialize()

        prediction = orchestrator.predictor.predict_usage("github-mcp", horizon_minutes=60)

        assert prediction is not None
        assert len(prediction.predictions.cpu) == 60
        assert prediction.confidence > 0

    @pytest.mark.asyncio
    async def test_initialize_respects_cache_settings(self, monkeypatch, manual_scheduler, manual_clock):
        monkeypatch.setenv("FLEET_CACHE_PREDICTIVE_WARMING", "false")
        orchestrator = OptimizationOrchestrator.build(Settings(environment="testing"),
                                                      scheduler=manual_scheduler, clock=manual_clock)

        await orchestrator.initialize()

        assert orchestrator.cache.config.predictive_warming is False
        assert orchestrator.cache.config.dynamic_ttl is True
        assert orchestrator.calculate_automation_level() == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_direct_construction_turns_on_cache_features(self, orchestrator, manual_scheduler,
                                                               manual_clock):
        orchestrator.cache.update_config(dynamic_ttl=False)
        direct = OptimizationOrchestrator(
            predictor=orchestrator.predictor,
            cache=orchestrator.cache,
            scaler=orchestrator.scaler,
            monitor=orchestrator.monitor,
            scheduler=manual_scheduler,
            clock=manual_clock,
        )

        await direct.initialize()

        assert direct.cache.config.dynamic_ttl is True

    @pytest.mark.asyncio
    async def test_destroy_stops_everything(self, orchestrator, manual_scheduler):
        await orchestrator.initialize()

        orchestrator.destroy()
        orchestrator.destroy()

        assert manual_scheduler.tasks == []
        assert not orchestrator.initialized


class TestIntegratedAnalysis:
    """Test the integrated analysis tick."""

    @pytest.mark.asyncio
    async def test_tick_feeds_predictor_and_scaler(self, orchestrator, manual_scheduler, settings):
        await orchestrator.initialize()

        await manual_scheduler.advance(30)

        for service in settings.orchestrator.services:
            assert orchestrator.scaler.get_current_metrics(service) is not None
        assert len(orchestrator.predictor.get_history("github-mcp")) == 145
        assert len(orchestrator.predictor.get_history("code-runner")) == 1

        status = orchestrator.get_system_status()
        assert status["initialized"] is True
        assert status["last_analysis"] == manual_scheduler.clock.now()
        assert status["performance"]["total_predictions"] == 3
        assert orchestrator.exporter.sample("analysis_ticks_total") == 1.0
        assert orchestrator.exporter.sample("health_score", service="github-mcp") is not None

    @pytest.mark.asyncio
    async def test_automation_level(self, orchestrator, manual_scheduler):
        await orchestrator.initialize()
        assert orchestrator.calculate_automation_level() == pytest.approx(80.0)

        await manual_scheduler.advance(30)
        assert orchestrator.calculate_automation_level() == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_several_ticks_run_cleanly(self, orchestrator, manual_scheduler):
        await orchestrator.initialize()

        await manual_scheduler.advance(600)

        assert all(task.failures == 0 for task in manual_scheduler.tasks)
        assert orchestrator.exporter.sample("analysis_ticks_total") == 20.0

    @pytest.mark.asyncio
    async def test_failing_metrics_source_is_contained(self, manual_clock, manual_scheduler):
        class BrokenSource:
            def collect(self, now):
                raise RuntimeError("health endpoint timed out")

        orchestrator = OptimizationOrchestrator.build(Settings(environment="testing"),
                                                      scheduler=manual_scheduler,
                                                      clock=manual_clock,
                                                      metrics_source=BrokenSource())

        assert await orchestrator.perform_integrated_analysis() == []
        assert orchestrator.get_system_status()["last_analysis"] is None

    def test_low_confidence_insight(self, orchestrator, make_prediction):
        insights = orchestrator.generate_integrated_insights({"github-mcp": make_prediction(confidence=0.5)})

        assert [i.type for i in insights] == ["prediction_accuracy"]
        assert "50.0%" in insights[0].message

    def test_no_insights_without_data(self, orchestrator):
        assert orchestrator.generate_integrated_insights({}) == []

    def test_cache_insight_after_poor_hit_rate(self, orchestrator):
        orchestrator.cache.get("missing")
        orchestrator.cache.collect_performance_metrics()

        insights = orchestrator.generate_integrated_insights({})

        assert [i.type for i in insights] == ["cache_optimization"]
        assert insights[0].automated is True


class TestReporting:
    """Test status and performance reports."""

    @pytest.mark.asyncio
    async def test_performance_report(self, orchestrator, manual_scheduler):
        await orchestrator.initialize()
        await manual_scheduler.advance(60)

        report = orchestrator.generate_performance_report()

        assert report["summary"].startswith("Intelligent Optimization System Report")
        assert "System Status: Active" in report["summary"]
        assert "Automation Level: 100%" in report["summary"]
        assert "Consider enabling auto-remediation for critical alerts" in report["recommendations"]
        assert set(report["metrics"]) == {
            "cache_hit_rate",
            "scaling_success_rate",
            "avg_response_time",
            "cost_savings",
            "automation_level",
        }

    def test_status_before_initialize(self, orchestrator):
        status = orchestrator.get_system_status()

        assert status["initialized"] is False
        assert status["components"]["predictor"] is False
        assert status["performance"]["total_predictions"] == 0
        assert status["last_analysis"] is None


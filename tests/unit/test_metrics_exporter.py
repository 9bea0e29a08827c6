"""
Unit tests for the Prometheus exporter.
"""

import pytest

from fleet_intelligence.monitoring import FleetMetricsExporter


@pytest.fixture
def exporter():
    return FleetMetricsExporter()


def publish(exporter, **overrides):
    snapshot = {
        "cache_hit_rate": 0.82,
        "cache_entries": 120,
        "scaling_success_rate": 1.0,
        "scaling_events": 3,
        "active_alerts": 2,
        "health_scores": {"github-mcp": 91.5, "mem0-mcp": 64.0},
        "prediction_confidence": {"github-mcp": 0.9},
    }
    snapshot.update(overrides)
    exporter.update(**snapshot)


class TestFleetMetricsExporter:
    """Test gauge publication and rendering."""

    def test_update_sets_gauges(self, exporter):
        publish(exporter)

        assert exporter.sample("cache_hit_rate") == pytest.approx(0.82)
        assert exporter.sample("cache_entries") == 120
        assert exporter.sample("scaling_events") == 3
        assert exporter.sample("active_alerts") == 2
        assert exporter.sample("health_score", service="mem0-mcp") == pytest.approx(64.0)
        assert exporter.sample("prediction_confidence", service="github-mcp") == pytest.approx(0.9)

    def test_ticks_are_counted(self, exporter):
        publish(exporter)
        publish(exporter, active_alerts=0)

        assert exporter.sample("analysis_ticks_total") == 2.0
        assert exporter.sample("active_alerts") == 0

    def test_unknown_sample(self, exporter):
        assert exporter.sample("health_score", service="unknown") is None

    def test_render(self, exporter):
        publish(exporter)

        text = exporter.render().decode("utf-8")

        assert "mcp_fleet_cache_hit_rate 0.82" in text
        assert 'mcp_fleet_health_score{service="github-mcp"} 91.5' in text

    def test_exporters_do_not_share_registries(self):
        first = FleetMetricsExporter()
        second = FleetMetricsExporter(namespace="staging_fleet")
        publish(first)

        assert second.sample("cache_hit_rate") == 0.0
        assert "staging_fleet_cache_hit_rate" in second.render().decode("utf-8")

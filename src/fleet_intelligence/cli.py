"""
Command line interface for the fleet intelligence layer.

Provides configuration validation and a virtual-time simulation that runs
the full optimization stack against synthetic metrics.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from fleet_intelligence import __version__
from fleet_intelligence.config.settings import ScalerSettings, Settings, get_settings
from fleet_intelligence.core.logging import get_logger, setup_logging
from fleet_intelligence.core.scheduler import ManualClock, ManualScheduler
from fleet_intelligence.orchestration.orchestrator import OptimizationOrchestrator

app = typer.Typer(
    name="fleet-intel",
    help="MCP fleet intelligence: forecasting, adaptive caching, auto-scaling and predictive monitoring",
    add_completion=False,
)
console = Console()


@app.command()
def version():
    """Show version information."""
    console.print(f"MCP Fleet Intelligence v{__version__}")


@app.command()
def validate_config():
    """Validate configuration from the environment and .env."""
    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"Configuration validation failed: {e}", style="red")
        sys.exit(1)

    console.print("Configuration validation successful!", style="green")

    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Environment", settings.environment)
    table.add_row("Log Level", settings.log_level)
    table.add_row("Services", ", ".join(settings.orchestrator.services))
    table.add_row("Scaling Policy", settings.scaler.policy)
    table.add_row("Dry Run", str(settings.scaler.dry_run))
    table.add_row("Cache TTL / Size", f"{settings.cache.base_ttl_seconds:.0f}s / {settings.cache.max_size}")
    table.add_row("Auto Remediation", str(settings.monitor.auto_remediation))
    table.add_row("Alert Channels", ", ".join(settings.monitor.alert_channels) or "none")
    webhooks = [name for name, url in (("slack", settings.monitor.slack_webhook_url),
                                        ("email", settings.monitor.email_webhook_url)) if url]
    table.add_row("Webhooks", ", ".join(webhooks) if webhooks else "not configured (log only)")

    console.print(table)


def _with_policy(settings: Settings, policy: Optional[str]) -> Settings:
    if policy is None:
        return settings
    scaler = ScalerSettings(**{**settings.scaler.model_dump(), "policy": policy})
    return settings.model_copy(update={"scaler": scaler})


async def _simulate(settings: Settings, ticks: int, show_metrics: bool) -> None:
    clock = ManualClock()
    scheduler = ManualScheduler(clock)
    orchestrator = OptimizationOrchestrator.build(settings, scheduler=scheduler, clock=clock)

    await orchestrator.initialize()
    interval = settings.orchestrator.analysis_interval_seconds
    with console.status("Running simulation..."):
        for _ in range(ticks):
            await scheduler.advance(interval)

    status = orchestrator.get_system_status()
    table = Table(title=f"System Status after {ticks} ticks ({clock.now():%Y-%m-%d %H:%M})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    for name, value in status["performance"].items():
        table.add_row(name.replace("_", " ").title(), f"{value:.3f}" if isinstance(value, float) else str(value))
    console.print(table)

    health = Table(title="Service Health")
    health.add_column("Service", style="cyan")
    health.add_column("Overall", justify="right")
    health.add_column("Trend")
    health.add_column("Risk Factors")
    for score in orchestrator.monitor.get_dashboard_data()["health_scores"]:
        health.add_row(score.service, f"{score.overall:.1f}", score.trend.value, ", ".join(score.risk_factors))
    console.print(health)

    events = orchestrator.scaler.get_scaling_history(limit=10)
    if events:
        scaling = Table(title="Recent Scaling Events")
        scaling.add_column("Time")
        scaling.add_column("Service", style="cyan")
        scaling.add_column("Action")
        scaling.add_column("Replicas", justify="right")
        scaling.add_column("Result")
        for event in events:
            scaling.add_row(
                f"{event.timestamp:%H:%M:%S}",
                event.service,
                event.action.action.value,
                f"{event.action.current_replicas} -> {event.action.target_replicas}",
                event.result.value,
            )
        console.print(scaling)

    report = orchestrator.generate_performance_report()
    console.print(report["summary"])
    for recommendation in report["recommendations"]:
        console.print(f"  - {recommendation}", style="yellow")

    if show_metrics:
        console.print(orchestrator.exporter.render().decode("utf-8"))

    orchestrator.destroy()


@app.command()
def simulate(
    ticks: int = typer.Option(20, min=1, help="Integrated analysis ticks to run"),
    policy: Optional[str] = typer.Option(None, help="Override the scaling policy"),
    metrics: bool = typer.Option(False, help="Print the Prometheus exposition at the end"),
    log_level: str = typer.Option("WARNING", help="Log level"),
    log_file: Optional[Path] = typer.Option(None, help="Log file path"),
):
    """Run the optimization stack in virtual time against synthetic metrics."""
    setup_logging(log_level, "development", log_file)
    logger = get_logger("cli")

    try:
        settings = _with_policy(get_settings(), policy)
    except Exception as e:
        console.print(f"Invalid configuration: {e}", style="red")
        sys.exit(1)

    logger.info("Starting simulation", ticks=ticks, policy=settings.scaler.policy)
    asyncio.run(_simulate(settings, ticks, metrics))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()

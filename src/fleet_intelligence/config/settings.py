"""
Configuration management with environment validation.

Every component of the optimization layer has its own settings class with
an environment prefix, so a deployment can tune the predictor, cache,
scaler and monitor independently (``FLEET_SCALER_DRY_RUN=true``).
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVICES = [
    "github-mcp",
    "npm-sentinel",
    "vercel-mcp",
    "docker-mcp",
    "taskmaster-ai",
    "mem0-mcp",
    "clear-thought",
    "code-runner",
]


class PredictorSettings(BaseSettings):
    """Resource predictor settings."""

    model_config = SettingsConfigDict(env_prefix="FLEET_PREDICTOR_", extra="ignore")

    max_history_size: int = Field(1000, ge=1)
    retrain_every: int = Field(50, ge=1)
    min_training_samples: int = Field(50, ge=1)
    min_prediction_samples: int = Field(10, ge=1)
    seasonal_period: int = Field(24, ge=1)
    trend_window: int = Field(10, ge=1)
    smoothing_alpha: float = Field(0.3, gt=0.0, le=1.0)


class CacheSettings(BaseSettings):
    """Adaptive cache settings."""

    model_config = SettingsConfigDict(env_prefix="FLEET_CACHE_", extra="ignore")

    base_ttl_seconds: float = Field(300.0, gt=0)
    max_size: int = Field(2000, ge=1)
    ml_enabled: bool = True
    predictive_warming: bool = True
    dynamic_ttl: bool = True
    load_based_eviction: bool = True
    performance_optimization: bool = True
    warming_interval_seconds: float = Field(300.0, gt=0)
    performance_interval_seconds: float = Field(60.0, gt=0)


class ScalerSettings(BaseSettings):
    """Auto scaler settings."""

    model_config = SettingsConfigDict(env_prefix="FLEET_SCALER_", extra="ignore")

    enabled: bool = True
    policy: str = "hybrid"
    evaluation_interval_seconds: float = Field(60.0, gt=0)
    dry_run: bool = False
    cost_optimization: bool = True
    predictive_horizon_minutes: int = Field(30, ge=1)

    @field_validator("policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        """Validate scaling policy name."""
        allowed = {"reactive", "predictive", "scheduled", "cost-aware", "hybrid"}
        value = v.lower().replace("_", "-")
        if value not in allowed:
            raise ValueError(f"Scaling policy must be one of: {sorted(allowed)}")
        return value


class MonitorSettings(BaseSettings):
    """Predictive monitor settings."""

    model_config = SettingsConfigDict(env_prefix="FLEET_MONITOR_", extra="ignore")

    enabled: bool = True
    monitoring_interval_seconds: float = Field(30.0, gt=0)
    prediction_horizon_minutes: int = Field(60, ge=1)
    anomaly_threshold: float = Field(0.7, ge=0.0, le=1.0)
    failure_prediction_threshold: float = Field(0.8, ge=0.0, le=1.0)
    auto_remediation: bool = False
    alert_channels: List[str] = Field(default_factory=lambda: ["email", "slack"])
    slack_webhook_url: str = ""
    email_webhook_url: str = ""


class OrchestratorSettings(BaseSettings):
    """Orchestrator wiring and default scaling constraints."""

    model_config = SettingsConfigDict(env_prefix="FLEET_ORCHESTRATOR_", extra="ignore")

    services: List[str] = Field(default_factory=lambda: list(DEFAULT_SERVICES))
    warmup_services: List[str] = Field(default_factory=lambda: list(DEFAULT_SERVICES[:3]))
    warmup_samples: int = Field(144, ge=0)
    warmup_spacing_minutes: int = Field(10, ge=1)
    analysis_interval_seconds: float = Field(30.0, gt=0)
    random_seed: int = 42

    min_replicas: int = Field(1, ge=0)
    max_replicas: int = Field(10, ge=1)
    max_scale_up_step: int = Field(3, ge=1)
    max_scale_down_step: int = Field(2, ge=1)
    cooldown_minutes: float = Field(5.0, ge=0)
    max_cpu_utilization: float = Field(70.0, gt=0)
    max_memory_utilization: float = Field(80.0, gt=0)
    max_latency_ms: float = Field(1000.0, gt=0)
    min_throughput: float = Field(10.0, ge=0)

    @model_validator(mode="after")
    def validate_replica_bounds(self) -> "OrchestratorSettings":
        """Validate replica bounds."""
        if self.min_replicas > self.max_replicas:
            raise ValueError("min_replicas must not exceed max_replicas")
        return self


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    predictor: PredictorSettings = Field(default_factory=PredictorSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    scaler: ScalerSettings = Field(default_factory=ScalerSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed_environments = {"development", "testing", "staging", "production"}
        if v.lower() not in allowed_environments:
            raise ValueError(f"Environment must be one of: {allowed_environments}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level value."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {allowed_levels}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()


__all__ = [
    "Settings",
    "PredictorSettings",
    "CacheSettings",
    "ScalerSettings",
    "MonitorSettings",
    "OrchestratorSettings",
    "DEFAULT_SERVICES",
    "get_settings",
]

"""
Operator configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main operator settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Cassandra Backup Operator", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment (development/staging/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log renderer (json/console)")

    # Probe and metrics server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")

    # Kubernetes
    namespace: str = Field(default="default", description="Namespace watched by the operator")
    kubeconfig_path: Optional[str] = Field(
        default=None, description="Path to kubeconfig file (None for in-cluster)"
    )
    api_group: str = Field(default="db.ibm.com", description="Custom resource API group")
    api_version: str = Field(default="v1alpha1", description="Custom resource API version")

    # Reconciliation
    retry_delay: float = Field(default=10.0, gt=0, description="Seconds before a reconciled resource is re-triggered")
    reconcile_timeout: float = Field(default=60.0, gt=0, description="Deadline of a single reconciliation pass")
    reconcile_workers: int = Field(default=2, ge=1, le=32, description="Concurrent passes per controller")
    resync_interval: float = Field(default=300.0, gt=0, description="Seconds between full relists")
    backoff_base: float = Field(default=5.0, gt=0, description="Initial backoff after a failed pass")
    backoff_max: float = Field(default=300.0, gt=0, description="Maximum backoff after repeated failures")

    # Icarus
    icarus_port: int = Field(default=4567, ge=1, le=65535, description="Icarus sidecar port")
    icarus_timeout: float = Field(default=30.0, gt=0, description="Timeout of a single Icarus request")

    # Sentry
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    sentry_traces_sample_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Sentry traces sample rate"
    )

    # Monitoring
    prometheus_enabled: bool = Field(default=True, description="Enable Prometheus metrics")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}")
        return v.lower()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


settings = Settings()

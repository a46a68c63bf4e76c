"""
Shared configuration management for the Transcendence vault layer.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "NODE_ENV"))
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")

    # Vault gateway, as seen by dependent services
    vault_service_url: str = Field(default="http://vault-service:8300", validation_alias="VAULT_SERVICE_URL")

    # Observability
    enable_tracing: bool = Field(default=False, validation_alias="ENABLE_TRACING")
    otel_exporter: str = Field(default="http://localhost:4317", validation_alias="OTEL_EXPORTER")
    enable_console_tracing: bool = Field(default=False, validation_alias="ENABLE_CONSOLE_TRACING")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)

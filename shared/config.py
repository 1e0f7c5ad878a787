"""
Shared configuration management for PG Access Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PGACCESS_",
        case_sensitive=False,
        extra="allow"
    )
    
    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    
    # Entitlements
    route_default_allow: bool = Field(
        default=True,
        description="Allow routes that match no rule in the route table"
    )
    approaching_limit_threshold: float = Field(default=0.8, ge=0)
    
    # Pricing
    plan_catalog_file: Optional[str] = Field(
        default=None,
        description="JSON file with the plan catalog loaded at startup"
    )
    
    # Observability
    enable_metrics: bool = Field(default=True)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""
    
    service_name: str
    port: int
    host: str = "0.0.0.0"
    
    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)

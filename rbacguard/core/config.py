"""Configuration management for the rbacguard admission webhook."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings for the admission webhook."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "rbacguard"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # Webhook routes
    webhook_prefix: str = "/v1/webhook"
    health_check_path: str = "/healthz"
    metrics_path: str = "/metrics"

    # Admission behaviour
    multi_cluster_management: bool = True
    sudo_username: str = "system:serviceaccount:cattle-system:rancher-webhook-sudo"
    sudo_group: str = "system:masters"
    slow_trace_seconds: float = 2.0

    # SubjectAccessReview client
    in_cluster: bool = False
    kubeconfig: Optional[str] = None
    sar_timeout_seconds: float = Field(5.0, gt=0)

    # Redis Configuration (object caches)
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_key_prefix: str = "rbacguard"
    redis_max_connections: int = 50
    redis_socket_timeout: float = 5.0

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_json: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 9443
    reload: bool = False
    ssl_certfile: Optional[str] = None
    ssl_keyfile: Optional[str] = None

    @field_validator("webhook_prefix")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Normalize the webhook prefix so routes join cleanly."""
        return v.rstrip("/") or "/"

    @property
    def redis_url(self) -> str:
        """Connection URL for the cache Redis."""
        if self.redis_password:
            return (
                f"redis://:{self.redis_password}@{self.redis_host}:"
                f"{self.redis_port}/{self.redis_db}"
            )
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for getting settings
settings = get_settings()

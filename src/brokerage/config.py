"""Service configuration using pydantic-settings.

BrokerageSettings reads configuration from environment variables with
the BROKERAGE_ prefix. Every field has a default, so the service starts
with an in-memory store and the built-in pipelines when nothing is set.
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrokerageSettings(BaseSettings):
    """Brokerage service configuration from environment variables.

    All environment variables are prefixed with BROKERAGE_
    (e.g., BROKERAGE_DATABASE_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="BROKERAGE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Storage Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; unset means the in-memory store
    database_url: Optional[str] = None

    database_min_pool_size: int = 2
    database_max_pool_size: int = 10

    # -------------------------------------------------------------------------
    # Pipeline Configuration
    # -------------------------------------------------------------------------
    # YAML file with custom pipelines, loaded next to the built-in ones
    pipelines_file: Optional[str] = None

    # Author recorded on timeline events when a request names no actor
    default_actor_name: str = "System"

    # Maximum client moves in flight during one bulk move
    bulk_move_concurrency: int = 10

    # -------------------------------------------------------------------------
    # Automated Action Configuration
    # -------------------------------------------------------------------------
    # Endpoint that receives automated stage actions; unset means log only
    action_webhook_url: Optional[str] = None

    action_timeout_seconds: float = 30.0
    action_max_retries: int = 3

    # -------------------------------------------------------------------------
    # Observability Configuration
    # -------------------------------------------------------------------------
    enable_metrics: bool = True
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that a database URL, when set, is a PostgreSQL URL."""
        if v is None:
            return v
        if not v.strip():
            raise ValueError("database_url cannot be empty")
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("action_webhook_url")
    @classmethod
    def validate_action_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the action webhook URL, when set, is an HTTP URL."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("action_webhook_url must start with http:// or https://")
        return v

    @field_validator("default_actor_name")
    @classmethod
    def validate_default_actor_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("default_actor_name cannot be empty")
        return v.strip()

    @field_validator("bulk_move_concurrency", "database_min_pool_size", "database_max_pool_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("action_timeout_seconds")
    @classmethod
    def validate_action_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("action_timeout_seconds must be positive")
        return v

    @field_validator("action_max_retries")
    @classmethod
    def validate_action_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("action_max_retries cannot be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> BrokerageSettings:
    """Create BrokerageSettings from the environment.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    return BrokerageSettings()

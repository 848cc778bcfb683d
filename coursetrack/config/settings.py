"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="coursetrack", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )

    # Authentication (tokens are issued by the accounts service)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT signing key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=60, description="Access token expiration (minutes)"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="coursetrack", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=False, description="Include caller info"
    )
    log_to_file: bool = Field(default=True, description="Write JSON logs to files")
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")

    # Progress weighting
    progress_weight_modules: float = Field(
        default=0.40, ge=0, le=1, description="Share of progress from modules"
    )
    progress_weight_assignments: float = Field(
        default=0.30, ge=0, le=1, description="Share of progress from assignments"
    )
    progress_weight_project: float = Field(
        default=0.30, ge=0, le=1, description="Share of progress from the project"
    )
    progress_passing_score: int = Field(
        default=70, ge=0, le=100, description="Minimum score that counts as passed"
    )
    progress_max_write_attempts: int = Field(
        default=3, ge=1, description="Conditional write attempts before giving up"
    )

    # Risk classification
    risk_default_estimated_days: int = Field(
        default=30, gt=0, description="Estimated course length when unparseable"
    )
    risk_low_gap: float = Field(
        default=25, description="Progress gap (points) above which risk is low"
    )
    risk_medium_gap: float = Field(
        default=50, description="Progress gap (points) above which risk is medium"
    )
    risk_medium_overdue_days: int = Field(
        default=30, description="Days past estimate above which risk is medium"
    )
    risk_high_overdue_days: int = Field(
        default=60, description="Days past estimate above which risk is high"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @model_validator(mode="after")
    def check_risk_ladder(self) -> Self:
        """Risk thresholds must escalate from low to high."""
        if self.risk_low_gap >= self.risk_medium_gap:
            msg = "risk_low_gap must be lower than risk_medium_gap"
            raise ValueError(msg)
        if self.risk_medium_overdue_days >= self.risk_high_overdue_days:
            msg = "risk_medium_overdue_days must be lower than risk_high_overdue_days"
            raise ValueError(msg)
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

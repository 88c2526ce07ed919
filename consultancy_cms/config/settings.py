"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
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
    app_name: str = Field(default="consultancy-cms", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")
    site_url: str = Field(
        default="http://localhost:3000",
        description="Public site URL used to build links in notifications",
    )

    # Storage
    storage_backend: Literal["memory", "cassandra"] = Field(
        default="memory", description="Persistence backend for all stores"
    )

    # Sessions
    auth_session_cookie_name: str = Field(
        default="next-auth.session-token", description="Session token cookie name"
    )
    auth_session_max_age_days: int = Field(
        default=30, description="Lifetime of a newly issued session (days)"
    )
    admin_emails: list[str] = Field(
        default_factory=list,
        description="Operator emails granted admin access regardless of role",
    )

    # Redis
    redis_enabled: bool = Field(
        default=False, description="Use Redis for comment rate limiting"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=5.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=5.0, description="Redis connect timeout"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="consultancy_cms", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )

    # Comments
    comment_max_length: int = Field(
        default=1000, description="Maximum comment length in characters"
    )
    comments_per_minute: int = Field(
        default=10, description="Comments allowed per author per minute"
    )
    comments_per_hour: int = Field(
        default=100, description="Comments allowed per author per hour"
    )
    comment_notify_admins: bool = Field(
        default=True, description="Email administrators about new comments"
    )
    comment_notify_rejections: bool = Field(
        default=False,
        description="Email authors when a pending comment is rejected",
    )
    comment_status_update_attempts: int = Field(
        default=3, description="Compare-and-set attempts for a status change"
    )

    # Email (Gmail API)
    email_enabled: bool = Field(
        default=False, description="Enable email sending via Gmail API"
    )
    email_credentials_path: str = Field(
        default="credentials/google-service-account.json",
        description="Path to Google service account JSON file",
    )
    email_sender_address: str = Field(
        default="noreply@example.com",
        description="Sender email address (must be in Google Workspace domain)",
    )
    email_sender_name: str = Field(
        default="Consultancy CMS", description="Sender display name"
    )
    email_max_retries: int = Field(
        default=2, description="Retries after a failed notification send"
    )
    email_retry_backoff_seconds: float = Field(
        default=1.0, description="Base delay between notification retries"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_to_file: bool = Field(default=True, description="Write rotating log files")
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
    cors_max_age: int = Field(default=600, description="CORS max age")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def email_configured(self) -> bool:
        """Check if Gmail API email is configured."""
        return bool(self.email_enabled and self.email_sender_address)

    @property
    def normalized_admin_emails(self) -> frozenset[str]:
        """Operator allow-list, lower-cased for comparison."""
        return frozenset(email.strip().lower() for email in self.admin_emails)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MongoSettings(BaseSettings):
    """MongoDB configuration settings."""

    model_config = SettingsConfigDict(env_prefix="MONGODB_")

    enabled: bool = Field(default=True, description="Use MongoDB; in-memory repositories when disabled")
    uri: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URI")
    database: str = Field(default="isc-code-connect", description="Database name")
    server_selection_timeout_ms: int = Field(
        default=5000, description="Server selection timeout in milliseconds"
    )


class JiraSettings(BaseSettings):
    """Jira REST API configuration settings."""

    model_config = SettingsConfigDict(env_prefix="JIRA_")

    base_url: str = Field(default="", description="Jira site URL, e.g. https://acme.atlassian.net")
    email: str = Field(default="", description="Jira account email for Basic auth")
    api_token: str = Field(default="", description="Jira API token")
    project_key: str = Field(default="ISCCC", description="Project used for feedback subtasks")
    timeout: int = Field(default=30, description="Request timeout in seconds")

    @property
    def is_configured(self) -> bool:
        """Check that all credentials needed to call Jira are present."""
        return bool(self.base_url and self.email and self.api_token)


class GitHubSettings(BaseSettings):
    """GitHub API configuration settings."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    api_url: str = Field(default="https://api.github.com", description="GitHub API base URL")
    token: str = Field(default="", description="GitHub personal access token")
    timeout: int = Field(default=30, description="Request timeout in seconds")


class WatsonxSettings(BaseSettings):
    """IBM watsonx.ai configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WATSONX_")

    api_key: str = Field(default="", description="IBM Cloud API key")
    project_id: str = Field(default="", description="watsonx project ID")
    service_url: str = Field(
        default="https://us-south.ml.cloud.ibm.com", description="watsonx.ai service URL"
    )
    iam_url: str = Field(
        default="https://iam.cloud.ibm.com/identity/token", description="IBM IAM token endpoint"
    )
    version: str = Field(default="2023-05-29", description="watsonx.ai API version date")
    max_new_tokens: int = Field(default=8000, description="Max new tokens per generation")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    top_p: float = Field(default=0.9, description="Nucleus sampling probability")
    timeout: int = Field(default=60, description="Request timeout in seconds")


class BackendSettings(BaseSettings):
    """Settings for the FastAPI chat backend that produces streamed answers."""

    model_config = SettingsConfigDict(env_prefix="BACKEND_")

    url: str = Field(default="http://localhost:8001", description="Chat backend base URL")
    stream_path: str = Field(default="/query/stream", description="Streaming query endpoint")
    reset_path: str = Field(default="/chat/reset", description="Chat reset endpoint")
    new_chat_path: str = Field(default="/chat/new", description="New chat endpoint")
    timeout: int = Field(default=300, description="Stream read timeout in seconds")


class ModelSettings(BaseSettings):
    """Available LLM models for the chat model selector."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    available_models: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AVAILABLE_MODELS", "MODEL_LIST"),
        description="Comma separated list or JSON array of model IDs",
    )
    default_model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DEFAULT_MODEL"),
        description="Model selected for new sessions",
    )


class CacheSettings(BaseSettings):
    """TTL (seconds) for each GitHub cache tier."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    repository_ttl: int = Field(default=300, description="Repository listings")
    file_ttl: int = Field(default=1800, description="File contents")
    contents_ttl: int = Field(default=600, description="Directory contents")
    dependency_ttl: int = Field(default=3600, description="Dependency analysis results")
    details_ttl: int = Field(default=300, description="PR and commit details")
    cleanup_interval: int = Field(default=120, description="Expired entry sweep interval")


class SecuritySettings(BaseSettings):
    """Security configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    api_key: str = Field(default="", description="Shared secret expected from the front-end")
    api_key_header: str = Field(default="X-API-Key", description="API key header name")
    user_header: str = Field(
        default="X-User-Email", description="Header carrying the authenticated user's email"
    )
    user_name_header: str = Field(
        default="X-User-Name", description="Header carrying the authenticated user's name"
    )
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"],
        description="CORS allowed origins",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="isc-code-connect", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=True, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Sub-settings
    mongodb: MongoSettings = Field(default_factory=MongoSettings)
    jira: JiraSettings = Field(default_factory=JiraSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    watsonx: WatsonxSettings = Field(default_factory=WatsonxSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    models: ModelSettings = Field(default_factory=ModelSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()

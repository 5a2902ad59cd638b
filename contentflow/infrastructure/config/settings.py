from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contentflow.domain.models.security import SecurityLevel


class Settings(BaseSettings):
    """Engine settings loaded from ``CONTENTFLOW_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CONTENTFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    service_name: str = Field(default="contentflow")
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    # Model invocation
    model_timeout_seconds: float = Field(default=30.0, gt=0)
    model_max_retries: int = Field(default=2, ge=0, le=10)
    model_retry_backoff_seconds: float = Field(default=0.5, ge=0)
    history_limit: int = Field(default=20, ge=0)
    step_timeout_seconds: float = Field(default=90.0, gt=0)

    # Context retrieval
    search_timeout_seconds: float = Field(default=5.0, gt=0)
    profile_timeout_seconds: float = Field(default=2.0, gt=0)
    classification_timeout_seconds: float = Field(default=2.0, gt=0)
    context_item_limit: int = Field(default=5, ge=0, le=50)
    context_snippet_length: int = Field(default=400, ge=50)
    max_context_security_level: SecurityLevel = Field(default=SecurityLevel.INTERNAL)
    profile_cache_ttl_seconds: int = Field(default=300, ge=0)

    # Prompt injection
    header_ratio: float = Field(default=0.2, gt=0, le=1)

    # Learning
    learning_confidence_threshold: float = Field(default=0.6, ge=0, le=1)
    learning_timeout_seconds: float = Field(default=5.0, gt=0)
    preferred_workflow_limit: int = Field(default=5, ge=1)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""Runtime configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Attributes
    ----------
    app_name : str
        Human-readable application name.
    database_url : str
        SQLAlchemy database URL.
    master_key_path : Path
        Local file containing the envelope master key.
    api_key_prefix : str
        Prefix every issued agent API key starts with.
    max_monthly_budget : int
        Ceiling on the summed budgets of an organization's campaigns per month.
    audit_max_body_size : int
        Serialized body size above which audit bodies are truncated.
    audit_queue_size : int
        Capacity of the in-process audit queue.
    audit_max_retries : int
        Persistence retries before an audit entry is dead-lettered.
    audit_retry_backoff_seconds : float
        Base delay between persistence retries.
    audit_dead_letter_path : Path
        JSON-lines file receiving audit entries that could not be persisted.
    rate_limit_cleanup_interval_seconds : float
        Pause between passes that drop idle rate-limit buckets.
    bootstrap_enabled : bool
        Whether one-time unauthenticated bootstrap is allowed.
    log_level : str
        Root log level.
    log_json : bool
        Whether log records are rendered as JSON.
    """

    model_config = SettingsConfigDict(env_prefix="ADAGENT_", extra="ignore")

    app_name: str = "Campaign Agent API"
    database_url: str = "sqlite+aiosqlite:///./adagent.db"
    master_key_path: Path = Field(default=Path(".adagent_master.key"))
    api_key_prefix: str = "bbl_"
    max_monthly_budget: int = Field(default=10000, ge=1)
    audit_max_body_size: int = Field(default=10000, ge=1)
    audit_queue_size: int = Field(default=1000, ge=1)
    audit_max_retries: int = Field(default=3, ge=0)
    audit_retry_backoff_seconds: float = Field(default=0.05, ge=0)
    audit_dead_letter_path: Path = Field(default=Path("audit_dead_letter.jsonl"))
    rate_limit_cleanup_interval_seconds: float = Field(default=300.0, gt=0)
    bootstrap_enabled: bool = True
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings.

    Returns
    -------
    Settings
        Cached settings instance.
    """
    return Settings()

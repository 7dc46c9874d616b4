"""Configuration management for TrendArc.

Loads settings from environment variables (or a .env file) using Pydantic.
Every field has a working default, so the engine runs with no configuration;
the AI-backed verifier is only enabled when a provider and key are present.

Usage:
    from trendarc.config import settings

    print(settings.metrics_cache_ttl_seconds)
    print(settings.log_level)
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """TrendArc configuration from environment variables.

    Loads from .env file automatically. Validates on instantiation.

    Attributes:
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
        snapshot_db_path: SQLite file holding snapshots and job locks
        metrics_cache_ttl_seconds: Lifetime of memoized comparison metrics
        agreement_mode: 'compat' (as-built agreement index) or 'corrected'
        peak_min_prominence: Points above the series mean required for a peak
        event_window_days: ± days searched around a peak for candidate events
        ai_provider: Verifier backend ('anthropic', 'openai', 'ollama' or None)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # System Settings
    log_level: str = Field(default="INFO", description="Logging level")
    snapshot_db_path: str = Field(
        default="data/trendarc.db",
        description="SQLite database for comparison snapshots and job locks",
    )

    # Metrics Engine
    metrics_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Time-to-live of memoized comparison metrics (seconds)",
    )
    agreement_mode: str = Field(
        default="compat",
        description="Agreement index mode: 'compat' or 'corrected'",
    )

    # Snapshot change detection
    snapshot_dedup_window_seconds: int = Field(
        default=3600,
        ge=0,
        description="Snapshots younger than this may be updated in place",
    )
    snapshot_margin_threshold: float = Field(default=2.0, ge=0)
    snapshot_confidence_threshold: float = Field(default=5.0, ge=0)
    snapshot_agreement_threshold: float = Field(default=10.0, ge=0)

    # Peak & event correlation
    peak_min_prominence: float = Field(default=20.0, ge=0)
    event_window_days: int = Field(default=7, ge=0, le=60)
    event_lookup_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Per-peak event lookup timeout (seconds)",
    )
    event_concurrency: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Max concurrent event lookups",
    )
    gdelt_rate_limit: int = Field(default=2, ge=1, description="GDELT requests/second")

    # Disambiguation verifier
    verification_concurrency: int = Field(default=3, ge=1, le=20)
    verification_timeout: float = Field(default=15.0, gt=0)
    context_match_threshold: int = Field(default=70, ge=0, le=100)

    # AI verifier (optional, rule-based verifier is used if absent)
    ai_provider: str | None = Field(
        default=None,
        description="AI verifier provider: 'openai', 'anthropic', or 'ollama' (None = rules)",
    )
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama base URL for a local model",
    )
    ai_model: str | None = Field(default=None, description="AI model override")
    ai_max_tokens: int = Field(default=300, ge=64, le=1024)

    # Warmup job
    warmup_concurrency: int = Field(default=5, ge=1, le=50)
    warmup_lock_seconds: int = Field(
        default=3600,
        ge=1,
        description="Maximum lifetime of the warmup job lock (seconds)",
    )

    @field_validator("ai_provider")
    @classmethod
    def validate_ai_provider(cls, v: str | None) -> str | None:
        """Ensure AI provider is valid."""
        if v is None or v == "":
            return None
        v_lower = v.lower()
        if v_lower not in {"openai", "anthropic", "ollama"}:
            raise ValueError(f"ai_provider must be 'openai', 'anthropic', or 'ollama', got '{v}'")
        return v_lower

    @field_validator("agreement_mode")
    @classmethod
    def validate_agreement_mode(cls, v: str) -> str:
        """Ensure agreement mode is valid."""
        v_lower = v.lower()
        if v_lower not in {"compat", "corrected"}:
            raise ValueError(f"agreement_mode must be 'compat' or 'corrected', got '{v}'")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper


# Global settings instance, loaded once at import
settings = Settings()

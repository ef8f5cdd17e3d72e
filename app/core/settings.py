from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database - SQLite by default, any SQLAlchemy URL accepted
    database_url: str = "sqlite:///./record_shop.db"
    database_pool_size: int = 20
    database_max_overflow: int = 40

    # Application
    app_name: str = "Record Shop Voice Assistant"
    debug: bool = False
    log_level: str = "INFO"
    logs_dir: Path = Path("logs")

    # Completion service
    llm_provider: Literal["openai", "azure"] = "openai"
    openai_api_key: str | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_api_key: str | None = None
    azure_openai_api_version: str = "2024-12-01-preview"
    voice_model: str = "o3-mini"
    voice_max_completion_tokens: int = 10_000
    voice_completion_timeout_seconds: float | None = None

    # Conversation behaviour
    voice_filler_delay_ms: int = 500
    voice_max_stock_results: int = 50
    voice_anonymous_caller_number: str | None = None
    voice_welcome_greeting: str = (
        "Hello and welcome to the record store, how can we help you today?"
    )
    voice_trace_logging: bool = False
    voice_trace_max_chars: int = 600

    # Transcript sink (Twilio Sync)
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_sync_service_sid: str | None = None
    twilio_sync_stream_sid: str | None = None

    # HTTP client
    http_timeout_seconds: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from existing .env

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL must be set")
        return v

    @field_validator("voice_filler_delay_ms")
    @classmethod
    def validate_filler_delay(cls, v):
        if not 500 <= v <= 2500:
            raise ValueError("VOICE_FILLER_DELAY_MS must be between 500 and 2500")
        return v

    @property
    def transcript_sink_configured(self) -> bool:
        return all(
            (
                self.twilio_account_sid,
                self.twilio_auth_token,
                self.twilio_sync_service_sid,
                self.twilio_sync_stream_sid,
            )
        )

    @property
    def completion_configured(self) -> bool:
        if self.llm_provider == "azure":
            return bool(self.azure_openai_endpoint and self.azure_openai_api_key)
        return bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

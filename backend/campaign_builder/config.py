import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "sqlite+aiosqlite:///./campaign_builder.db"

    # Server (run.py)
    host: str = "0.0.0.0"
    port: int = 8000
    web_concurrency: int = 4

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_aiosqlite(cls, values: dict) -> dict:
        """Plain sqlite:// URLs need the aiosqlite driver for the async engine."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("sqlite://") and "+aiosqlite" not in url:
            values["database_url"] = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return values

    api_key: str = ""  # Required in production; in dev, empty = auth disabled
    cron_secret: str = ""
    cors_origins: str = "http://localhost:5173,http://localhost:3000"
    encryption_key: str = ""

    # AI providers
    anthropic_api_key: str = ""
    claude_model: str = "claude-3-5-sonnet-20241022"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    ai_timeout_seconds: float = 30.0
    ai_max_tokens: int = 4096
    ai_temperature: float = 0.7

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if not self.api_key:
                raise ValueError(
                    "API_KEY must be set in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if ":memory:" in self.database_url:
                logger.warning("DATABASE_URL points at an in-memory database in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["http://localhost:5173", "http://localhost:3000"]

    @property
    def configured_ai_providers(self) -> list[str]:
        providers = []
        if self.anthropic_api_key:
            providers.append("claude")
        if self.openai_api_key:
            providers.append("openai")
        if self.gemini_api_key:
            providers.append("gemini")
        return providers


@lru_cache
def get_settings() -> Settings:
    return Settings()

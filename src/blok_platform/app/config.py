"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the repository root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./blok_platform.db"

    # AI
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    classification_temperature: float = 0.3

    # Messaging provider (Twilio WhatsApp + SMS)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_api_base_url: str = "https://api.twilio.com/2010-04-01"

    # Email
    sendgrid_api_key: str = ""
    alert_from_email: str = "alertas@blok.app"

    # Timeouts for the intake pipeline (seconds)
    classification_timeout_seconds: float = 20.0
    knowledge_timeout_seconds: float = 5.0
    persistence_timeout_seconds: float = 10.0
    delivery_timeout_seconds: float = 15.0

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    frontend_url: str = "https://blok.app"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def twilio_configured(self) -> bool:
        """True when both Twilio credentials are present."""
        return bool(self.twilio_account_sid and self.twilio_auth_token)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()

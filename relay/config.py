from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from relay.schemas.canonical import RelayConfig

DEFAULT_PLATFORM = "telegram"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096

# Project root (parent of relay/) - used so .env is found regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Explicitly load .env into os.environ so it works in tests and subprocesses
load_dotenv(_PROJECT_ROOT / ".env")

# Env names that must be present before the relay can start
REQUIRED_ENV = {
    "server_url": "SERVER",
    "telegram_token": "TELEGRAM_TOKEN",
    "config": "CONFIG",
}


class Settings(BaseSettings):
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Relay endpoints
    server_url: Optional[str] = Field(default=None, validation_alias="SERVER")
    local_server_url: Optional[str] = Field(
        default=None, validation_alias="LOCAL_SERVER"
    )

    # Telegram
    telegram_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TELEGRAM_TOKEN", "TELEGRAM_BOT_TOKEN"),
    )

    # Hub configuration blob (JSON object), sent in the init envelope
    config: Optional[dict[str, Any]] = Field(default=None, validation_alias="CONFIG")

    bot_name: Optional[str] = Field(default=None, validation_alias="RELAY_BOT_NAME")
    platform: str = Field(
        default=DEFAULT_PLATFORM, validation_alias="RELAY_PLATFORM"
    )

    # Connection lifecycle (seconds)
    connect_timeout: float = Field(
        default=5.0, gt=0, validation_alias="RELAY_CONNECT_TIMEOUT"
    )
    retry_delay: float = Field(default=5.0, ge=0, validation_alias="RELAY_RETRY_DELAY")
    reconnect_delay: float = Field(
        default=1.0, ge=0, validation_alias="RELAY_RECONNECT_DELAY"
    )
    ping_interval: float = Field(
        default=30.0, gt=0, validation_alias="RELAY_PING_INTERVAL"
    )

    max_message_length: int = Field(
        default=TELEGRAM_MAX_MESSAGE_LENGTH,
        gt=0,
        validation_alias="RELAY_MAX_MESSAGE_LENGTH",
    )

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("server_url", "local_server_url", "telegram_token", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        """Treat empty env values as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_production(self) -> bool:
        """Check if the current environment is production."""
        return self.environment.lower() == "production"

    @property
    def endpoints(self) -> list[str]:
        """Relay endpoints in connection order: primary first, then fallback."""
        return [url for url in (self.server_url, self.local_server_url) if url]

    @property
    def relay_config(self) -> RelayConfig:
        return RelayConfig.model_validate(self.config or {})

    def missing_required(self) -> list[str]:
        """Env names of required settings that are not set."""
        return [env for name, env in REQUIRED_ENV.items() if getattr(self, name) is None]


def get_settings() -> Settings:
    """Get application settings with required environment variables."""
    return Settings()

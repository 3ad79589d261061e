"""Application configuration and settings management."""
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .security import Argon2Params, PBKDF2Params


class Settings(BaseSettings):
    """Global application settings loaded from environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent / ".." / ".env"),
        env_file_encoding="utf-8",
        env_prefix="BASTION_",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = "Bastion"
    secret_key: str = "change-me"
    api_key: str = "change-me"

    # Database
    database_url: str = "sqlite+aiosqlite:///./bastion.db"

    # Accounts
    session_duration_days: int = 7
    rate_limit_attempts: int = 5
    rate_limit_window_seconds: int = 300
    reserved_usernames: Annotated[List[str], NoDecode] = ["admin", "administrator", "moderator", "server", "console"]
    blacklisted_words: Annotated[List[str], NoDecode] = []
    password_hash: Argon2Params = Argon2Params(
        memory=64 * 1024,
        iterations=3,
        parallelism=2,
        length=64,
        salt_length=64,
    )
    session_token_hash: Argon2Params = Argon2Params(
        memory=19 * 1024,
        iterations=2,
        parallelism=1,
        length=32,
        salt_length=8,
    )
    legacy_password_hash: PBKDF2Params = PBKDF2Params(hmac="sha256", iterations=10000, salt_length=16)

    # Verification
    verification_ttl_seconds: int = 600

    # Messaging
    messenger_peers: Annotated[List[str], NoDecode] = []
    messenger_timeout_seconds: float = 10.0
    messenger_accept_inbound: bool = False  # serve POST /api/messages even without peers

    # Maintenance
    sweep_interval_seconds: int = 900  # 0 disables the sweep job

    # Discord
    discord_token: str | None = None
    discord_command_prefix: str = "!"

    @field_validator("reserved_usernames", "blacklisted_words", "messenger_peers", mode="before")
    @classmethod
    def _split_list(cls, value: List[str] | str) -> List[str]:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings instance."""

    return Settings()

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .security.crypto import get_fernet


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    store_backend: Literal["local", "firebase"] = Field(default="local", alias="STORE_BACKEND")
    cache_dir: Path = Field(default=Path(".cache"), alias="CACHE_DIR")
    user_scope: Optional[str] = Field(default=None, alias="USER_SCOPE")

    firebase_api_key: Optional[str] = Field(default=None, alias="FIREBASE_API_KEY")
    firebase_database_url: Optional[str] = Field(default=None, alias="FIREBASE_DATABASE_URL")
    firebase_auth_token: Optional[str] = Field(default=None, alias="FIREBASE_AUTH_TOKEN")
    app_id: str = Field(default="default-app-id", alias="APP_ID")

    master_key: Optional[str] = Field(default=None, alias="MASTER_KEY")

    telegram_bot_token: Optional[str] = Field(default=None, alias="TELEGRAM_BOT_TOKEN")

    timezone: str = Field(default="UTC", alias="TIMEZONE")
    currency_symbol: str = Field(default="$", alias="CURRENCY_SYMBOL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def validate_required(self) -> None:
        if self.store_backend == "firebase":
            if not self.firebase_api_key:
                raise ValueError("FIREBASE_API_KEY is required for STORE_BACKEND=firebase")

            if not self.firebase_database_url:
                raise ValueError("FIREBASE_DATABASE_URL is required for STORE_BACKEND=firebase")

        if self.master_key:
            try:
                get_fernet(self.master_key)
            except ValueError as e:
                raise ValueError(f"MASTER_KEY is not a valid Fernet key: {e}") from e

    @property
    def ledger_dir(self) -> Path:
        return self.cache_dir / "ledger"

    @property
    def sessions_dir(self) -> Path:
        return self.cache_dir / "sessions"


@lru_cache
def load_settings() -> Settings:
    settings = Settings()
    settings.validate_required()
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    return settings

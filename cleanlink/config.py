from __future__ import annotations
import os
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from cleanlink.core.errors import ConfigError

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CLEANLINK_", env_file=".env", extra="ignore", populate_by_name=True)

    # Engine
    image_cache_dir: str = Field(default="./image_cache", description="Where album images are written until delivered.")
    http_timeout_s: float = Field(default=20.0, description="Client-level timeout for connect, redirects and body transfer.")
    expand_timeout_s: float = Field(default=15.0)
    album_max_concurrency: int = Field(default=10, ge=1)
    manifest_api_url: str = Field(default="https://tikwm.com/api")
    skip_marker: str = Field(default="nocut", description="Messages containing this word are left alone.")
    anon_marker: str = Field(default="anon")

    # Mirrors
    tiktok_mirror: str = Field(default="vm.dstn.to")
    x_mirror: str = Field(default="fixupx.com")
    instagram_mirror: str = Field(default="ddinstagram.com")

    # Network
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8788)
    metrics_path: str = Field(default="/metrics")
    health_path: str = Field(default="/healthz")

    # Security
    # Off by default: the HTTP surface is meant to sit on localhost next to the bot.
    require_client_auth: bool = Field(default=False)
    client_api_keys: list[str] = Field(default_factory=list, description="Static API keys for POST /sanitize.")

    # Logging
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

    # Telegram
    telegram_bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("CLEANLINK_TELEGRAM_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"),
    )
    token_file: str = Field(default="token.txt")
    telegram_polling: bool = Field(default=False, description="Start Telegram long polling inside `serve`.")
    telegram_poll_timeout_s: int = Field(default=10)
    telegram_api_base: str = Field(default="https://api.telegram.org")

def load_settings() -> Settings:
    return Settings()

def resolve_telegram_token(settings: Settings) -> str:
    """Token from the environment first, then from ``token_file``."""
    token = settings.telegram_bot_token.strip()
    if not token and os.path.exists(settings.token_file):
        with open(settings.token_file, "r", encoding="utf-8") as f:
            token = f.read().strip()
    if not token:
        raise ConfigError(
            f"Telegram bot token is missing: set TELEGRAM_BOT_TOKEN or put it in {settings.token_file}"
        )
    return token

from functools import lru_cache
from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    server_host: str = "127.0.0.1"
    server_port: int = 8000
    log_level: str = "INFO"
    # Allow both localhost and 127.0.0.1 for local development
    allowed_origins: List[AnyHttpUrl] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]  # type: ignore

    # Upstream completion service (OpenAI-compatible)
    infini_ai_api_key: Optional[str] = None
    completion_url: str = "https://cloud.infini-ai.com/maas/v1/chat/completions"
    completion_model: str = "deepseek-v3"
    upstream_connect_timeout: float = 10.0
    # None disables the read timeout; a stalled upstream then blocks the relay
    upstream_read_timeout: Optional[float] = None

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./deepchat.db"
    default_user_id: str = "guest"
    title_max_length: int = 50

    # None leaves the accumulated streamed reply unbounded
    relay_max_reply_chars: Optional[int] = None

    # pydantic-settings v2 style config: load env from both ../.env (repo root) and .env
    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=("../.env", ".env"),
        extra="ignore",  # ignore env vars not defined as fields
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()

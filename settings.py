from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    # Feed behaviour
    page_size: int = 9
    search_debounce_ms: int = 400
    transient_flag_seconds: float = 2.0

    # External auth provider (JWKS-verified bearer tokens). Disabled for local dev.
    auth_enabled: bool = False
    auth_jwks_url: Optional[str] = None
    auth_issuer: Optional[str] = None
    auth_audience: Optional[str] = None
    local_user_id: str = "local-dev"

    # Base URL the HTTP backend adapter talks to
    api_base_url: str = "http://localhost:8000"
    # Application base URL (for constructing links in rendered pages)
    app_base_url: str = "http://localhost:8000"  # Default for local dev

    cors_origins: List[str] = [
        "http://localhost",
        "http://localhost:8000",
        "http://127.0.0.1",
        "http://127.0.0.1:8000",
    ]


@lru_cache()
def get_settings() -> Settings:
    return Settings()

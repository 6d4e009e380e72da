from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    openrouter_api_key: Optional[str] = None
    suggestion_model: str = "openai/gpt-4.1-mini"

    # Cognito identity delegate. When disabled, the local account directory is used.
    cognito_enabled: bool = False
    cognito_user_pool_id: Optional[str] = None
    cognito_app_client_id: Optional[str] = None
    cognito_domain: Optional[str] = None
    aws_region: str = "us-east-1"

    # Load the demo users/portfolios into every new client session
    seed_sample_data: bool = True

    session_cookie_name: str = "creative_hub_session"
    # Idle client sessions are dropped after this many seconds; the registry is capped at max_sessions
    session_idle_ttl_seconds: int = 3600
    max_sessions: int = 1000

    # Application base URL (for constructing callback URLs etc.)
    app_base_url: str = "http://localhost:8000"  # Default for local dev
    cors_origins: list[str] = [
        "http://localhost",
        "http://localhost:8000",
        "http://127.0.0.1",
        "http://127.0.0.1:8000",
    ]


@lru_cache()
def get_settings() -> Settings:
    return Settings()

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    openai_api_key: str = ""

    analysis_model: str = "gpt-5.1"
    chat_model: str = "gpt-5.1"
    analysis_max_output_tokens: int = 8000

    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # In-memory workspaces
    session_ttl: int = 3600  # 1h idle
    session_max_entries: int = 500

    # Cookie settings
    cookie_domain: str | None = None  # None for localhost, set for production
    cookie_secure: bool = False  # True in production (HTTPS only)
    cookie_samesite: str = "lax"  # "strict" in production

    model_config = {"env_file": ".env"}


@lru_cache
def get_settings() -> Settings:
    return Settings()

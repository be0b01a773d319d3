"""Global configuration using pydantic settings management.

Values are loaded from environment variables (or an .env file) and
exposed via the cached `get_settings()` accessor.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from env or defaults."""

    # --- Persistence server ---
    db_path: str = Field(default="db.json", alias="PEDAGOCHAT_DB_PATH")
    dist_path: str = Field(default="dist", alias="PEDAGOCHAT_DIST_PATH")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")

    # CORS - accept comma-separated string
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # --- Persistence client ---
    api_base_url: str = Field(default="http://localhost:3000/api", alias="PEDAGOCHAT_API_BASE")
    local_storage_path: str = Field(default=".pedagochat_local.json", alias="PEDAGOCHAT_LOCAL_STORAGE")
    http_timeout_seconds: Optional[float] = Field(default=None, alias="PEDAGOCHAT_HTTP_TIMEOUT")
    poll_interval_seconds: float = Field(default=10.0, alias="PEDAGOCHAT_POLL_INTERVAL")

    # --- LLM providers ---
    api_key: str = Field(default="", alias="API_KEY")
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    default_gemini_model: str = Field(default="gemini-3-flash-preview", alias="GEMINI_MODEL")
    default_openrouter_model: str = Field(default="openai/gpt-4o-mini", alias="OPENROUTER_MODEL")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL")
    app_title: str = Field(default="PedagoChat", alias="APP_TITLE")
    app_referer: str = Field(default="http://localhost:3000", alias="APP_REFERER")
    temperature: float = 0.1
    pro_thinking_budget: int = 32768

    # --- Prompt ---
    answer_language: str = Field(default="French", alias="ANSWER_LANGUAGE")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS origins to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()

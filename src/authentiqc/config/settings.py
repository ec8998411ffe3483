"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "authentiqc"
    app_env: str = "dev"
    log_level: str = "INFO"
    # Empty means products and images live in process memory only.
    database_url: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_fast_model: str = "gpt-4o-mini"
    llm_detailed_model: str = "gpt-4o"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.2, ge=0.0)
    openai_api_key: str = ""
    completed_task_ttl_s: float = Field(default=3600.0, gt=0)
    failed_task_ttl_s: float = Field(default=1800.0, gt=0)
    task_sweep_interval_s: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="AUTHENTIQC_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

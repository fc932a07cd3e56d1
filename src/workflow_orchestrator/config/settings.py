"""Application settings."""

from functools import lru_cache
import logging
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "workflow-orchestrator"
    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str = ""
    backend_base_url: str = "http://127.0.0.1:5000/api"
    backend_api_token: str = ""
    task_timeout_s: float = Field(default=30.0, ge=0.01)
    poll_interval_s: float = Field(default=3.0, gt=0.0)
    progress_interval_s: float = Field(default=0.5, gt=0.0)
    max_concurrent_runs: int = Field(default=4, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ORCHESTRATOR_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("ORCHESTRATOR_DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

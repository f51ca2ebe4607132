from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    # Core
    app_name: str = Field(default="larder-server")
    environment: str = Field(default="dev")  # dev|staging|prod
    log_json: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    # Data
    database_url: str | None = Field(default=None)

    # API
    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Planning
    week_starts_on: int = Field(default=0, ge=0, le=6)  # 0=Sunday
    plan_lookup_window_weeks: int = Field(default=13, ge=1, le=104)
    waste_risk_window_days: int = Field(default=3, ge=0)
    best_by_soon_window_days: int = Field(default=14, ge=1)
    default_finish_by: str = Field(default="18:00", pattern=r"^\d{2}:\d{2}$")
    default_meal_duration_minutes: int = Field(default=30, ge=1)

    # OpenAI
    openai_api_key: str | None = Field(default=None)
    openai_planning_model: str = Field(default="gpt-5-mini")
    openai_planning_top_p: float | None = Field(default=None)
    openai_planning_reasoning_effort: str = Field(default="low")
    openai_planning_max_output_tokens: int = Field(default=4000)
    openai_request_timeout_seconds: int = Field(default=90, ge=30, le=300)

    # Observability
    sentry_dsn: str | None = Field(default=None)
    sentry_traces_sample_rate: float = Field(default=0.0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _csv_to_list(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""
Settings for the Standup Pulse service, read from the environment or .env.

Credentials have no defaults. The calendar settings (APP_TIMEZONE and
WEEK_START_DAY) decide which local day a submission belongs to and where
week and month periods begin, so changing them changes every stored metric.
"""
import json
import logging
from functools import lru_cache
from typing import Optional, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

COMMON_PASSWORDS = {'postgres', 'password', 'admin', '123456', 'root', 'pulse'}


class Settings(BaseSettings):

    # Service
    app_name: str = "Standup Pulse API"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8001
    api_prefix: str = "/api"
    cors_origins: str = "http://localhost:3001"  # comma-separated or JSON array

    # PostgreSQL; user, password and database are required
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str
    postgres_password: str
    postgres_db: str

    # Calendar
    app_timezone: str = "Africa/Cairo"
    week_start_day: int = Field(0, ge=0, le=6)  # 0 = Monday ... 6 = Sunday
    default_workspace_id: str = "default"

    # Sentiment service; every score is neutral while no key is set
    sentiment_api_key: Optional[str] = None
    sentiment_api_url: str = "https://api.openai.com/v1/chat/completions"
    sentiment_model: str = "gpt-3.5-turbo"
    sentiment_timeout_seconds: float = Field(30.0, ge=5)
    sentiment_max_workers: int = Field(4, ge=1)

    roster_cache_ttl_seconds: int = 3600

    # Batch schedule, cron expressions in app_timezone
    scheduler_enabled: bool = True
    metrics_cron: str = "30 23 * * *"
    alert_checks_cron: str = "0 22 * * *"
    achievements_cron: str = "0 23 * * *"

    # Rate limits (slowapi); window is second, minute, hour or day
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_window: str = "minute"
    rate_limit_batch_requests: int = 5
    rate_limit_batch_window: str = "minute"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator('cors_origins', mode='before')
    @classmethod
    def join_cors_origins(cls, v):
        if isinstance(v, list):
            return ','.join(str(item) for item in v)
        v = (v or "").strip()
        if v.startswith('['):
            try:
                return ','.join(str(item) for item in json.loads(v))
            except (json.JSONDecodeError, TypeError):
                pass
        return v

    @field_validator('app_timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"APP_TIMEZONE '{v}' is not a valid IANA timezone")
        return v

    @model_validator(mode='after')
    def check_production_safety(self):
        """Debug mode tolerates a common password and wildcard CORS with a warning; production refuses both."""
        problems = []
        if self.postgres_password.lower() in COMMON_PASSWORDS:
            problems.append(f"POSTGRES_PASSWORD is a common default ('{self.postgres_password}')")
        if '*' in self.cors_origins:
            problems.append("CORS_ORIGINS allows every origin ('*')")

        if problems and not self.debug:
            raise ValueError("Unsafe production configuration: " + "; ".join(problems))
        for problem in problems:
            logger.warning(f"CONFIG WARNING: {problem} (allowed in DEBUG mode only)")
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]

    @property
    def timezone(self) -> ZoneInfo:
        """Zone used to turn submission instants into local calendar days."""
        return ZoneInfo(self.app_timezone)

    @property
    def sentiment_configured(self) -> bool:
        return bool(self.sentiment_api_key)

    def log_config_summary(self) -> str:
        """Multi-line summary for the startup log. Contains no secrets."""
        lines = [
            f"App: {self.app_name} v{self.app_version} (debug={self.debug})",
            f"Listening: {self.host}:{self.port}",
            f"PostgreSQL: {self.postgres_host}:{self.postgres_port}/{self.postgres_db}",
            f"Calendar: {self.app_timezone}, week starts on day {self.week_start_day}",
            f"Default Workspace: {self.default_workspace_id}",
            f"CORS Origins: {self.cors_origins_list}",
            f"Sentiment Configured: {self.sentiment_configured}",
            f"Scheduler: {'enabled' if self.scheduler_enabled else 'disabled'}",
        ]
        return "Configuration Summary:\n" + "\n".join(f"  {line}" for line in lines)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings; raises ValidationError when a required variable is missing."""
    return Settings()

"""
Application settings (Pydantic Settings).
"""
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_env_path = Path(__file__).resolve().parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_path, extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./mentorbook.db"
    sql_echo: bool = False
    log_level: str = "INFO"

    jwt_secret: str = "change-me"
    jwt_lifetime_seconds: int = 3600

    # Wall-clock zone used to compare sessions against HH:MM windows and slots
    schedule_timezone: str = "UTC"
    cancellation_notice_hours: int = 24
    booking_max_retries: int = 3
    booking_retry_backoff_seconds: float = 0.05

    meeting_link_base_url: str = "https://meet.mentorbook.dev"
    default_page_size: int = 10
    max_page_size: int = 100

    @field_validator("schedule_timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        ZoneInfo(v)
        return v

    @field_validator("meeting_link_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def schedule_tz(self) -> ZoneInfo:
        return ZoneInfo(self.schedule_timezone)


settings = Settings()

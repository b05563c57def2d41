from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apiguard.duration import parse_duration


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="API_GUARD_", env_file=".env", env_file_encoding="utf-8")

    key_header_name: str = Field(default="X-Authorization", min_length=1)
    key_parameter_name: str = Field(default="key", min_length=1)
    include_parameter_name: str = Field(default="include", min_length=1)
    logging_enabled: bool = True
    default_limit_window: timedelta = timedelta(hours=1)
    store_timeout_seconds: float | None = Field(default=5.0, gt=0)
    db_path: str = Field(default="data/api_guard.sqlite", min_length=1)
    policy_file: str | None = None

    @field_validator("default_limit_window", mode="before")
    @classmethod
    def _parse_window(cls, value: object) -> timedelta:
        # Invalid windows fail at startup rather than on every request.
        return parse_duration(value)


settings = Settings()

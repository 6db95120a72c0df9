"""Application settings using Pydantic."""

from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "DIALOGSYNC_ENVIRONMENT"),
        description="Deployment environment (development|test|production)",
    )

    # Backend API
    api_base_url: str = Field(
        default="http://localhost:5556",
        description="Base URL of the workspace backend (dialog list / hierarchy endpoints).",
    )
    auth_key: str = Field(
        default="",
        description="Bearer token for protected endpoints (empty = no Authorization header).",
    )
    request_timeout_s: float = Field(
        default=30.0,
        description="Timeout (seconds) for dialog list and hierarchy fetches.",
    )

    # Run-control refresh
    run_control_debounce_s: float = Field(
        default=0.2,
        description="Repeat refresh requests for the same reason inside this window are dropped.",
    )

    # Navigation
    deep_link: str = Field(
        default="",
        description="Optional start-up navigation target, e.g. /dl/q4h?questionId=q-1",
    )

    # Observability
    log_level: str = "INFO"

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("request_timeout_s", "run_control_debounce_s")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, v: Any) -> str:
        return str(v or "INFO").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Lazily construct Settings so tests and CLIs can set env vars before first access.
    return Settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()


class _SettingsProxy:
    """Lazy proxy for Settings.

    This avoids eager settings instantiation at import time, which can make tests
    order-dependent when env vars are changed during `pytest_configure()`.
    """

    def __getattr__(self, name: str) -> Any:
        return getattr(get_settings(), name)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<SettingsProxy {get_settings()!r}>"


settings = _SettingsProxy()

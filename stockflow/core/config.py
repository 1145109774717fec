import json
from typing import Any, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
PRODUCTION_ENVS = {"prod", "production"}
LOCAL_ENVS = {"dev", "development", "local", "staging", "stage"}
LOCALHOST_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"


def _split_list(raw: Any) -> List[str]:
    """Accept a JSON array, a comma separated string or a list; drop blanks."""
    if raw is None:
        return []
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.startswith("["):
            raw = json.loads(stripped)
            if not isinstance(raw, list):
                raise ValueError("expected a JSON list")
        else:
            raw = stripped.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValueError(f"cannot read a list from {raw!r}")
    return [str(item).strip() for item in raw if str(item).strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )

    app_name: str = "StockFlow Inventory Core"
    env: str = "dev"
    log_level: str = "INFO"

    # Storage
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # Analytics defaults, each overridable per request
    low_stock_default_threshold: int = Field(default=10, ge=0)
    low_stock_result_limit: int = Field(default=50, ge=1, le=1000)
    top_sellers_window_days: int = Field(default=30, ge=1, le=366)
    top_sellers_limit: int = Field(default=5, ge=1, le=100)
    movement_series_days: int = Field(default=7, ge=1, le=366)

    # Browser dashboards
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: Any) -> List[str]:
        try:
            return _split_list(value)
        except ValueError as exc:
            raise ValueError(f"CORS_ORIGINS: {exc}") from exc

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, value: str | None) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def environment(self) -> str:
        return self.env.strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment in PRODUCTION_ENVS

    @property
    def uses_sqlite(self) -> bool:
        return self.database_url.lower().startswith("sqlite")

    @property
    def origin_regex(self) -> str | None:
        # Local dashboards run on whatever port the dev server picked.
        if self.cors_origin_regex or self.environment not in LOCAL_ENVS:
            return self.cors_origin_regex
        return LOCALHOST_ORIGIN_REGEX

    def engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"pool_pre_ping": True}
        if not self.uses_sqlite:
            options.update(
                pool_size=self.db_pool_size,
                max_overflow=self.db_max_overflow,
                pool_timeout=self.db_pool_timeout_seconds,
                pool_recycle=self.db_pool_recycle_seconds,
            )
        return options

    @model_validator(mode="after")
    def check_production(self) -> "Settings":
        if not self.is_production:
            return self
        problems = []
        if "*" in self.cors_origins:
            problems.append("CORS_ORIGINS cannot contain '*'")
        if self.cors_origin_regex:
            problems.append("CORS_ORIGIN_REGEX must be unset")
        if self.uses_sqlite:
            problems.append("DATABASE_URL must point at a networked database")
        if problems:
            raise ValueError("Unsafe production settings: " + "; ".join(problems))
        return self


settings = Settings()

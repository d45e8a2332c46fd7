import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Stock Ledger"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # STOCK WRITES
    quantity_decimal_places: int = Field(default=3, ge=0, le=6)
    stock_lock_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    stock_write_max_attempts: int = Field(default=5, ge=1, le=20)
    stock_write_backoff_seconds: float = Field(default=0.05, ge=0, le=5)
    snapshot_read_max_attempts: int = Field(default=5, ge=1, le=20)

    # REPORTING
    history_default_limit: int = Field(default=100, ge=1)
    history_max_limit: int = Field(default=1000, ge=1)
    reject_alert_window_days: int = Field(default=30, ge=1, le=366)
    reject_alert_rate_threshold: float = Field(default=10.0, ge=0, le=100)
    report_top_n: int = Field(default=10, ge=1, le=100)
    recent_movements_default_limit: int = Field(default=20, ge=1)
    recent_movements_max_limit: int = Field(default=100, ge=1)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @model_validator(mode="after")
    def validate_limits_and_production_safety(self) -> "Settings":
        if self.history_default_limit > self.history_max_limit:
            raise ValueError("HISTORY_DEFAULT_LIMIT cannot exceed HISTORY_MAX_LIMIT")
        if self.recent_movements_default_limit > self.recent_movements_max_limit:
            raise ValueError("RECENT_MOVEMENTS_DEFAULT_LIMIT cannot exceed RECENT_MOVEMENTS_MAX_LIMIT")

        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        if self.database_url.lower().startswith("sqlite"):
            raise ValueError("DATABASE_URL cannot point at SQLite in production")
        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()

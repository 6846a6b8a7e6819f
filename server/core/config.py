"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/agriintel.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=1, le=100)
    database_max_overflow: int = Field(default=30, ge=0, le=100)

    # Remote livestock API
    api_base_url: str = Field(default="http://localhost:3000")
    api_timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    # Fallback cache
    fallback_cache_ttl: int = Field(default=300, ge=1)  # 5 minutes
    health_score_threshold: int = Field(default=70, ge=0, le=100)
    health_check_interval: float = Field(default=30.0, gt=0)  # seconds between pings

    # Query performance
    slow_query_threshold_ms: int = Field(default=100, ge=1)
    max_metrics: int = Field(default=1000, ge=10)
    metrics_max_age_hours: int = Field(default=24, ge=1)

    # Polling
    default_refresh_interval_ms: int = Field(default=30000, ge=0)

    # Cleanup
    cleanup_enabled: bool = Field(default=True)
    cleanup_interval: int = Field(default=300, ge=1)  # 5 minutes

    # Rate Limiting
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_window: int = Field(default=3600, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def uses_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }

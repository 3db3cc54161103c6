"""Application configuration via pydantic-settings."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Deden Stays"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "deden"
    postgres_password: str = Field(default="deden_secret")
    postgres_db: str = "deden_stays"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync PostgreSQL connection URL for Alembic."""
        if self.database_url_override:
            return self.database_url_override.replace("+asyncpg", "").replace("+aiosqlite", "")
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker and result backend)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Admin access (stand-in for the session layer, which lives elsewhere)
    admin_api_key: str = Field(default="change-me-admin-key")

    # Treasury wallet that receives every payment
    treasury_address: str = "0x0000000000000000000000000000000000000000"

    # Chain RPC (Alchemy)
    alchemy_api_key_arbitrum: Optional[str] = None
    alchemy_api_key_bnb: Optional[str] = None
    alchemy_api_key_base: Optional[str] = None
    rpc_urls: Dict[int, str] = {}  # explicit per-chain RPC URLs win over Alchemy keys
    rpc_timeout_seconds: float = 10.0

    # Transaction verification
    verification_backend: Literal["inline", "celery"] = "inline"
    verification_max_attempts: int = 10
    verification_retry_delay_ms: int = 3000

    # Payment window granted on approval
    payment_window_minutes: int = 24 * 60

    # Email (Resend)
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_from_address: str = "bookings@deden.space"
    email_from_name: str = "Deden"
    frontend_base_url: str = "http://localhost:3000"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    @field_validator("treasury_address")
    @classmethod
    def validate_treasury_address(cls, v: str) -> str:
        v = v.strip()
        if not _ADDRESS_RE.match(v):
            raise ValueError(
                f"Invalid treasury address format: {v}. "
                "Expected 0x followed by 40 hexadecimal characters"
            )
        return v.lower()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

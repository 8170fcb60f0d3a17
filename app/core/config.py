from __future__ import annotations

import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Tax Filing Engine"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    REDIS_URL: str = "redis://localhost:6379/0"

    # Object storage for rendered report documents
    S3_ENDPOINT: str | None = None
    S3_ACCESS_KEY: str | None = None
    S3_SECRET_KEY: str | None = None
    S3_BUCKET: str = "tax-reports"
    S3_REGION: str = "eu-central-1"
    S3_PRESIGN_TTL: int = 3600
    STORAGE_LOCAL_DIR: str = "./storage/reports"
    ATTACHMENT_MAX_BYTES: int = 10 * 1024 * 1024

    # Tax engine defaults
    TAX_DEFAULT_COUNTRY: str = "DE"
    TAX_DEFAULT_CURRENCY: str = "EUR"
    TAX_FULL_YEAR_MIN_DAYS: int = 360

    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "120/minute"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None

    @field_validator("TAX_DEFAULT_COUNTRY", "TAX_DEFAULT_CURRENCY", mode="before")
    @classmethod
    def upper_codes(cls, v):
        """Country and currency codes are stored upper-case."""
        if v is None:
            return v
        return str(v).strip().upper()

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        if self.TAX_FULL_YEAR_MIN_DAYS < 1:
            raise ValueError("TAX_FULL_YEAR_MIN_DAYS must be positive")

        required_in_prod = ("DATABASE_URL", "REDIS_URL")
        if self.ENV.lower() == "prod":
            missing = [name for name in required_in_prod if not getattr(self, name)]
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    RATE_LIMIT_ENABLED: bool = False
    DATABASE_URL: str = "sqlite:///:memory:"
    STORAGE_LOCAL_DIR: str = "./storage/test-reports"


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = []
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()

from decimal import Decimal
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # Datastore
    datastore_backend: str = Field(default="mongo", alias="DATASTORE_BACKEND")  # mongo | memory
    mongodb_uri: str = Field(default="mongodb://localhost:27017/?replicaSet=rs0", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="watchearn", alias="MONGODB_DB_NAME")
    transaction_retries: int = Field(default=3, alias="TRANSACTION_RETRIES")

    # Business rules
    business_timezone: str = Field(default="Africa/Maputo", alias="BUSINESS_TIMEZONE")
    currency: str = Field(default="MZN", alias="CURRENCY")
    signup_bonus: Decimal = Field(default=Decimal("50.00"), alias="SIGNUP_BONUS")
    referral_plan_rate: Decimal = Field(default=Decimal("0.10"), alias="REFERRAL_PLAN_RATE")
    referral_daily_rate: Decimal = Field(default=Decimal("0.05"), alias="REFERRAL_DAILY_RATE")
    min_deposit: Decimal = Field(default=Decimal("1.00"), alias="MIN_DEPOSIT")
    min_withdrawal: Decimal = Field(default=Decimal("1.00"), alias="MIN_WITHDRAWAL")

    # Tokens
    token_max_age_seconds: int = 7 * 24 * 3600
    password_reset_max_age_seconds: int = 3600

    # Storage
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")
    storage_local_path: str = Field(default="./uploads", alias="STORAGE_LOCAL_PATH")
    storage_public_base_url: str = Field(default="/media", alias="STORAGE_PUBLIC_BASE_URL")
    gcs_bucket_name: str | None = Field(default=None, alias="GCS_BUCKET_NAME")
    max_upload_bytes: int = Field(default=200 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    # Email
    notifier_backend: str = Field(default="log", alias="NOTIFIER_BACKEND")  # log | smtp
    smtp_host: str = Field(default="localhost", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str = Field(default="", alias="SMTP_USERNAME")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    email_from: str = Field(default="WatchEarn <no-reply@watchearn.local>", alias="EMAIL_FROM")
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Bootstrap admin
    admin_email: str | None = Field(default=None, alias="ADMIN_EMAIL")
    admin_username: str | None = Field(default=None, alias="ADMIN_USERNAME")
    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(self.cors_origins_raw)


@lru_cache
def get_settings() -> Settings:
    return Settings()

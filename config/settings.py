"""
Application settings.

Values come from the process environment (a local `.env` file is loaded first
through python-dotenv) and are validated once into an `AppSettings` model.
The JWT signing secret has no built-in fallback: a missing or short secret
fails startup.

PIN_HASH_TIME_COST is not recorded in the stored PIN hashes: once PINs are
stored it must not change, or every existing PIN stops verifying.
"""

import os
from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator


class ConfigurationError(Exception):
    """Raised when the process configuration is missing or inconsistent."""


SMS_PROVIDER_TWILIO = "twilio"
SMS_PROVIDER_LOG = "log"

ENV_PRODUCTION = "production"


class AppSettings(BaseModel):
    app_environment: str = "development"

    database_url: str

    jwt_secret: str = Field(..., min_length=16)
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = Field(default=24, ge=1)
    refresh_token_expire_days: int = Field(default=7, ge=1)

    sms_provider: str = SMS_PROVIDER_LOG
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None

    pin_hash_time_cost: int = Field(default=1, ge=1)
    pin_hash_max_concurrency: int = Field(default=4, ge=1)

    rate_limit_enabled: bool = True

    @field_validator("sms_provider")
    @classmethod
    def validate_sms_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in (SMS_PROVIDER_TWILIO, SMS_PROVIDER_LOG):
            raise ValueError(f"unsupported SMS provider '{v}'")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_environment.lower() == ENV_PRODUCTION


def _build_database_url() -> str:
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        return database_url

    # Fall back to the individual connection variables
    return "postgresql://%s:%s@%s:%s/%s" % (
        os.environ.get("db_user"),
        quote_plus(os.environ.get("db_password", "")),
        os.environ.get("db_host"),
        os.environ.get("db_port"),
        os.environ.get("db_name"),
    )


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> AppSettings:
    """Read and validate settings from the environment."""
    load_dotenv()

    raw = {
        "app_environment": os.environ.get("APP_ENV", "development"),
        "database_url": _build_database_url(),
        "jwt_secret": os.environ.get("JWT_SECRET", ""),
        "jwt_algorithm": os.environ.get("JWT_ALGORITHM", "HS256"),
        "access_token_expire_hours": os.environ.get(
            "JWT_ACCESS_TOKEN_EXPIRE_HOURS", 24
        ),
        "refresh_token_expire_days": os.environ.get(
            "JWT_REFRESH_TOKEN_EXPIRE_DAYS", 7
        ),
        "sms_provider": os.environ.get("SMS_PROVIDER", SMS_PROVIDER_LOG),
        "twilio_account_sid": os.environ.get("TWILIO_ACCOUNT_SID"),
        "twilio_auth_token": os.environ.get("TWILIO_AUTH_TOKEN"),
        "twilio_phone_number": os.environ.get("TWILIO_PHONE_NUMBER"),
        "pin_hash_time_cost": os.environ.get("PIN_HASH_TIME_COST", 1),
        "pin_hash_max_concurrency": os.environ.get("PIN_HASH_MAX_CONCURRENCY", 4),
        "rate_limit_enabled": _env_bool("RATE_LIMIT_ENABLED", True),
    }

    try:
        return AppSettings(**raw)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][-1]) for err in e.errors())
        raise ConfigurationError(f"Invalid configuration for: {fields}") from e


@lru_cache()
def get_settings() -> AppSettings:
    """
    Settings for the running process (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return load_settings()

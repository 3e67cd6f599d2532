from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class Settings(BaseModel):
    email_captcha_threshold: int = Field(default=5)
    email_hard_limit: int = Field(default=5)
    email_window_seconds: int = Field(default=3600)
    counter_store_max_entries: int = Field(default=10000)
    counter_store_stripes: int = Field(default=16)
    trust_forwarded_for: bool = Field(default=True)
    recaptcha_secret_key: Optional[str] = Field(default=None)
    recaptcha_site_key: str = Field(default="")
    recaptcha_verify_url: str = Field(default=RECAPTCHA_VERIFY_URL)
    recaptcha_timeout_seconds: float = Field(default=5.0)
    captcha_valid_token: Optional[str] = Field(default=None)
    database_url: str = Field(default="sqlite:///./tempmail.db")
    jwt_secret: str = Field(default="your-secret-key")
    jwt_algorithm: str = Field(default="HS256")
    admin_passphrase: Optional[str] = Field(default=None)
    user_email_ttl_days: int = Field(default=60)
    public_email_ttl_hours: int = Field(default=48)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name, default)
    if value is None or value == "":
        return None
    return value


def _load_settings() -> Settings:
    env = os.getenv
    return Settings(
        email_captcha_threshold=int(env("EMAIL_CAPTCHA_THRESHOLD", "5")),
        email_hard_limit=int(env("EMAIL_HARD_LIMIT", "5")),
        email_window_seconds=int(env("EMAIL_WINDOW_SECONDS", "3600")),
        counter_store_max_entries=int(env("COUNTER_STORE_MAX_ENTRIES", "10000")),
        counter_store_stripes=int(env("COUNTER_STORE_STRIPES", "16")),
        trust_forwarded_for=env("TRUST_FORWARDED_FOR", "1") == "1",
        recaptcha_secret_key=_env("RECAPTCHA_SECRET_KEY"),
        recaptcha_site_key=env("RECAPTCHA_SITE_KEY", "") or "",
        recaptcha_verify_url=env("RECAPTCHA_VERIFY_URL", RECAPTCHA_VERIFY_URL) or RECAPTCHA_VERIFY_URL,
        recaptcha_timeout_seconds=float(env("RECAPTCHA_TIMEOUT_SECONDS", "5")),
        captcha_valid_token=_env("CAPTCHA_VALID_TOKEN"),
        database_url=env("DATABASE_URL", "sqlite:///./tempmail.db") or "sqlite:///./tempmail.db",
        jwt_secret=env("JWT_SECRET", "your-secret-key") or "your-secret-key",
        jwt_algorithm=env("JWT_ALGORITHM", "HS256") or "HS256",
        admin_passphrase=_env("ADMIN_PASSPHRASE"),
        user_email_ttl_days=int(env("USER_EMAIL_TTL_DAYS", "60")),
        public_email_ttl_hours=int(env("PUBLIC_EMAIL_TTL_HOURS", "48")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return _load_settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = ["Settings", "get_settings", "reload_settings"]

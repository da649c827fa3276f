"""
Centralized settings for the Participium backend and Telegram bot.

Provides a lightweight wrapper around environment variables (with `.env`
support for local development) so the rest of the codebase can import a single
`get_settings()` helper when configuration is needed. Boundary coordinates,
photo limits and session timeouts live here and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
import os

from dotenv import dotenv_values


@dataclass(frozen=True)
class Settings:
    """Immutable view of application configuration."""

    # General
    environment: str
    database_url: str

    # Auth
    jwt_secret: Optional[str]
    jwt_access_minutes: int

    # Telegram
    telegram_bot_token: Optional[str]
    notifications_enabled: bool
    session_ttl_seconds: int
    session_sweep_seconds: int
    link_code_ttl_minutes: int

    # Email verification
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    smtp_use_tls: bool
    email_from: str
    email_code_ttl_minutes: int

    # Photos
    storage_dir: str
    max_photos: int
    max_photo_bytes: int

    # Municipal boundary (bounding box)
    boundary_name: str
    boundary_min_lat: float
    boundary_max_lat: float
    boundary_min_lon: float
    boundary_max_lon: float

    # Routing
    assignment_policy: str

    # Geocoding
    geocoder_url: str
    geocoder_user_agent: str
    geocoder_timeout: float

    # Observability
    metrics_namespace: str
    sentry_dsn: Optional[str]


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_lookup(key: str, env: dict[str, str], default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key) or env.get(key) or default


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""

    env_path = Path(__file__).resolve().parents[1] / ".env"
    env_file = dotenv_values(str(env_path)) if env_path.exists() else {}

    default_storage = str(Path(__file__).resolve().parents[1] / "storage")

    return Settings(
        environment=_env_lookup("APP_ENV", env_file, "development"),
        database_url=_env_lookup("DATABASE_URL", env_file, "sqlite+aiosqlite:///./participium.db"),
        jwt_secret=_env_lookup("JWT_SECRET", env_file),
        jwt_access_minutes=int(_env_lookup("JWT_ACCESS_MINUTES", env_file, "60")),
        telegram_bot_token=_env_lookup("TELEGRAM_BOT_TOKEN", env_file),
        notifications_enabled=_as_bool(_env_lookup("NOTIFICATIONS_ENABLED", env_file, "true"), True),
        session_ttl_seconds=int(_env_lookup("SESSION_TTL_SECONDS", env_file, "1800")),
        session_sweep_seconds=int(_env_lookup("SESSION_SWEEP_SECONDS", env_file, "60")),
        link_code_ttl_minutes=int(_env_lookup("LINK_CODE_TTL_MINUTES", env_file, "10")),
        smtp_host=_env_lookup("SMTP_HOST", env_file),
        smtp_port=int(_env_lookup("SMTP_PORT", env_file, "587")),
        smtp_user=_env_lookup("SMTP_USER", env_file),
        smtp_password=_env_lookup("SMTP_PASSWORD", env_file),
        smtp_use_tls=_as_bool(_env_lookup("SMTP_USE_TLS", env_file, "true"), True),
        email_from=_env_lookup("EMAIL_FROM", env_file, "noreply@participium.local"),
        email_code_ttl_minutes=int(_env_lookup("EMAIL_CODE_TTL_MINUTES", env_file, "15")),
        storage_dir=_env_lookup("STORAGE_DIR", env_file, default_storage),
        max_photos=int(_env_lookup("MAX_PHOTOS", env_file, "3")),
        max_photo_bytes=int(_env_lookup("MAX_PHOTO_BYTES", env_file, str(10 * 1024 * 1024))),
        boundary_name=_env_lookup("BOUNDARY_NAME", env_file, "Turin"),
        boundary_min_lat=float(_env_lookup("BOUNDARY_MIN_LAT", env_file, "44.99")),
        boundary_max_lat=float(_env_lookup("BOUNDARY_MAX_LAT", env_file, "45.14")),
        boundary_min_lon=float(_env_lookup("BOUNDARY_MIN_LON", env_file, "7.57")),
        boundary_max_lon=float(_env_lookup("BOUNDARY_MAX_LON", env_file, "7.78")),
        assignment_policy=_env_lookup("ASSIGNMENT_POLICY", env_file, "least_loaded").lower(),
        geocoder_url=_env_lookup("GEOCODER_URL", env_file, "https://nominatim.openstreetmap.org"),
        geocoder_user_agent=_env_lookup("GEOCODER_USER_AGENT", env_file, "participium/1.0"),
        geocoder_timeout=float(_env_lookup("GEOCODER_TIMEOUT", env_file, "10")),
        metrics_namespace=_env_lookup("METRICS_NAMESPACE", env_file, "participium"),
        sentry_dsn=_env_lookup("SENTRY_DSN", env_file),
    )


__all__ = ["Settings", "get_settings"]

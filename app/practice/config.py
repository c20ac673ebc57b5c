import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    permission_lookup_timeout: float
    default_timezone: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getfloat(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///practice.db"),
        permission_lookup_timeout=_getfloat("PERMISSION_LOOKUP_TIMEOUT", 5.0),
        default_timezone=_getenv("DEFAULT_TIMEZONE", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "PERMISSION_LOOKUP_TIMEOUT": s.permission_lookup_timeout,
        "DEFAULT_TIMEZONE": s.default_timezone,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "JSON_SORT_KEYS": False,
    }

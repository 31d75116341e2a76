import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    google_maps_api_key: str
    geocoding_base_url: str
    geocoding_timeout_seconds: float

    cats_list_default_limit: int
    cats_list_max_limit: int

    login_rate_limit: int
    login_rate_window: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///tnr.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        google_maps_api_key=_getenv("GOOGLE_MAPS_API_KEY", ""),
        geocoding_base_url=_getenv("GEOCODING_BASE_URL", "https://maps.googleapis.com/maps/api/geocode/json"),
        geocoding_timeout_seconds=_getenv_float("GEOCODING_TIMEOUT_SECONDS", 5.0),
        cats_list_default_limit=_getenv_int("CATS_LIST_DEFAULT_LIMIT", 500),
        cats_list_max_limit=_getenv_int("CATS_LIST_MAX_LIMIT", 1000),
        login_rate_limit=_getenv_int("LOGIN_RATE_LIMIT", 5),
        login_rate_window=_getenv_int("LOGIN_RATE_WINDOW", 300),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "GOOGLE_MAPS_API_KEY": s.google_maps_api_key,
        "GEOCODING_BASE_URL": s.geocoding_base_url,
        "GEOCODING_TIMEOUT_SECONDS": s.geocoding_timeout_seconds,
        "CATS_LIST_DEFAULT_LIMIT": s.cats_list_default_limit,
        "CATS_LIST_MAX_LIMIT": s.cats_list_max_limit,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW": s.login_rate_window,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; nothing large is uploaded
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    encryption_key: str
    app_version: str
    app_port: int

    proxy_container: str
    proxy_certs_dir: str

    sentry_dsn: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///hosting.db"),
        # Stored secrets stay readable across SECRET_KEY rotation only if ENCRYPTION_KEY is pinned.
        encryption_key=_getenv("ENCRYPTION_KEY", secret_key),
        app_version=_getenv("APP_VERSION", "0.1.0"),
        app_port=_getenv_int("APP_PORT", 3000),
        # empty: certificates are stored but not pushed into a proxy container
        proxy_container=_getenv("PROXY_CONTAINER", ""),
        proxy_certs_dir=_getenv("PROXY_CERTS_DIR", "/etc/traefik/acme/custom"),
        sentry_dsn=_getenv("SENTRY_DSN", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "ENCRYPTION_KEY": s.encryption_key,
        "APP_VERSION": s.app_version,
        "APP_PORT": s.app_port,
        "PROXY_CONTAINER": s.proxy_container,
        "PROXY_CERTS_DIR": s.proxy_certs_dir,
        "SENTRY_DSN": s.sentry_dsn,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # certificates and keys are small; 1MB is plenty
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }


def is_dev(config) -> bool:
    return (config.get("ENV") or "").strip().lower() in ("dev", "development")

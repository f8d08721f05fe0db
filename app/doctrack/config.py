import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    app_base_url: str

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    email_provider_url: str
    email_provider_api_key: str
    email_from: str
    default_user_password: str
    attachment_max_bytes: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///doctrack.db"),
        app_base_url=_getenv("APP_BASE_URL", "http://localhost:8080"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        email_provider_url=_getenv("EMAIL_PROVIDER_URL", "https://api.resend.com/emails"),
        email_provider_api_key=_getenv("EMAIL_PROVIDER_API_KEY", ""),
        email_from=_getenv("EMAIL_FROM", "no-reply@doctrack.local"),
        default_user_password=_getenv("DEFAULT_USER_PASSWORD", "123456789"),
        attachment_max_bytes=_getenv_int("ATTACHMENT_MAX_BYTES", 5 * 1024 * 1024),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "APP_BASE_URL": s.app_base_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "EMAIL_PROVIDER_URL": s.email_provider_url,
        "EMAIL_PROVIDER_API_KEY": s.email_provider_api_key,
        "EMAIL_FROM": s.email_from,
        "DEFAULT_USER_PASSWORD": s.default_user_password,
        "ATTACHMENT_MAX_BYTES": s.attachment_max_bytes,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request body limit; per-file attachment limit is ATTACHMENT_MAX_BYTES
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
    }

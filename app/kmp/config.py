import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    app_url: str
    app_version: str

    storage_backend: str
    upload_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    cache_dir: str
    rate_limit_dir: str
    log_dir: str

    login_rate_limit_max: int
    login_rate_limit_decay_minutes: int
    register_rate_limit_max: int
    register_rate_limit_decay_minutes: int
    force_https: bool

    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_encryption: str
    mail_from_address: str
    mail_from_name: str
    mail_reply_to: str


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


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    var_dir = _getenv("VAR_DIR", os.path.join(os.getcwd(), "var"))
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///kmp.db"),
        app_url=_getenv("APP_URL", "http://localhost:5000").rstrip("/"),
        app_version=_getenv("APP_VERSION", "1.0.0"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        upload_root=_getenv("UPLOAD_ROOT", os.path.join(os.getcwd(), "uploads")),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "eu-west-2"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        cache_dir=_getenv("CACHE_DIR", os.path.join(var_dir, "cache")),
        rate_limit_dir=_getenv("RATE_LIMIT_DIR", os.path.join(var_dir, "rate_limit")),
        log_dir=_getenv("LOG_DIR", os.path.join(var_dir, "logs")),
        login_rate_limit_max=_getenv_int("LOGIN_RATE_LIMIT_MAX", 5),
        login_rate_limit_decay_minutes=_getenv_int("LOGIN_RATE_LIMIT_DECAY_MINUTES", 15),
        register_rate_limit_max=_getenv_int("REGISTER_RATE_LIMIT_MAX", 3),
        register_rate_limit_decay_minutes=_getenv_int("REGISTER_RATE_LIMIT_DECAY_MINUTES", 60),
        force_https=_getenv_bool("FORCE_HTTPS", env in ("prod", "production")),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_username=_getenv("SMTP_USERNAME", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        smtp_encryption=_getenv("SMTP_ENCRYPTION", "tls").lower(),
        mail_from_address=_getenv("MAIL_FROM_ADDRESS", "noreply@knowmypatient.nhs.uk"),
        mail_from_name=_getenv("MAIL_FROM_NAME", "Know My Patient"),
        mail_reply_to=_getenv("MAIL_REPLY_TO", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "APP_URL": s.app_url,
        "APP_VERSION": s.app_version,
        "STORAGE_BACKEND": s.storage_backend,
        "UPLOAD_ROOT": s.upload_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "CACHE_DIR": s.cache_dir,
        "RATE_LIMIT_DIR": s.rate_limit_dir,
        "LOG_DIR": s.log_dir,
        # per-route rate limits (attempts, minutes)
        "RATE_LIMITS": {
            "login": (s.login_rate_limit_max, s.login_rate_limit_decay_minutes),
            "register": (s.register_rate_limit_max, s.register_rate_limit_decay_minutes),
        },
        "FORCE_HTTPS": s.force_https,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USERNAME": s.smtp_username,
        "SMTP_PASSWORD": s.smtp_password,
        "SMTP_ENCRYPTION": s.smtp_encryption,
        "MAIL_FROM_ADDRESS": s.mail_from_address,
        "MAIL_FROM_NAME": s.mail_from_name,
        "MAIL_REPLY_TO": s.mail_reply_to,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # patient documents are capped at 5MB each; three per form
        "MAX_CONTENT_LENGTH": 20 * 1024 * 1024,
    }

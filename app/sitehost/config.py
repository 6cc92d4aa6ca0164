import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    sites_root: str
    templates_dir: str
    uploads_dir: str
    site_base_domain: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_settings() -> Settings:
    cwd = os.getcwd()
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///sitehost.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        sites_root=_getenv("SITES_ROOT", os.path.join(cwd, "user_websites")),
        templates_dir=_getenv("TEMPLATES_DIR", os.path.join(cwd, "allscripts")),
        uploads_dir=_getenv("UPLOADS_DIR", os.path.join(cwd, "uploads")),
        site_base_domain=_getenv("SITE_BASE_DOMAIN", "yoursite.com"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "SITES_ROOT": s.sites_root,
        "TEMPLATES_DIR": s.templates_dir,
        "UPLOADS_DIR": s.uploads_dir,
        "SITE_BASE_DOMAIN": s.site_base_domain,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # template archives may be up to 50MB; avatar limit (5MB) is enforced in the route
        "MAX_CONTENT_LENGTH": 50 * 1024 * 1024,
    }

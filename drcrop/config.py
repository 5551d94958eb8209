"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv


def _env_bool(name: str, default: str = "0") -> bool:
    value = str(os.getenv(name, default)).strip().lower()
    return value in ("1", "true", "yes", "y", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Centralised project settings based on OS environment variables."""

    database_url: str = "sqlite:///data/drcrop.db"
    log_level: str = "INFO"

    secret_key: str = "dev-secret-key"
    access_token_expire_minutes: int = 60 * 24 * 7
    cookie_name: str = "access_token"
    cookie_secure: bool = False

    # External diagnosis webhook
    webhook_url: str = ""
    webhook_api_key: str = ""
    webhook_timeout: float = 30.0
    webhook_mode: str = "binary"

    # Uploaded images
    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_image_types: tuple = ("image/jpeg", "image/jpg", "image/png")

    s3_bucket_name: str = ""
    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    frontend_dir: str = "frontend"


def _build_settings() -> Settings:
    load_dotenv()

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/drcrop.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        secret_key=os.getenv("SECRET_KEY", "dev-secret-key"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)),
        cookie_secure=_env_bool("COOKIE_SECURE", "0"),
        webhook_url=os.getenv("ANALYSIS_WEBHOOK_URL", ""),
        webhook_api_key=os.getenv("ANALYSIS_WEBHOOK_API_KEY", ""),
        webhook_timeout=float(os.getenv("ANALYSIS_WEBHOOK_TIMEOUT", 30)),
        webhook_mode=os.getenv("ANALYSIS_WEBHOOK_MODE", "binary").strip().lower(),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)),
        s3_bucket_name=os.getenv("S3_BUCKET_NAME", ""),
        aws_region=os.getenv("AWS_REGION") or "us-east-1",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", ""),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", ""),
        cors_origins=_env_list("CORS_ORIGINS", "*"),
        frontend_dir=os.getenv("FRONTEND_DIR", "frontend"),
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()

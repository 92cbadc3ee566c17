"""Configuration module for the Course Hub backend.

This module provides centralized configuration management, including directory
paths, API server settings, credential settings, media storage settings and
application defaults. All configuration values can be overridden via
environment variables.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Directory Configuration ---

# Root directory of the project
ROOT_DIR = Path(__file__).parent.parent.resolve()

# Data directory name
DATA_DIR_NAME = "data"
DATA_DIR = ROOT_DIR / DATA_DIR_NAME

# --- API Server Configuration ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "5000"))

# CORS allowed origins (comma-separated list)
# Default includes local development addresses. For production, set via
# CORS_ALLOWED_ORIGINS environment variable.
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,"
    "http://127.0.0.1:3000",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# --- Upload Configuration ---

# Per-file ceiling for multipart uploads
MAX_UPLOAD_SIZE: int = 100 * 1024 * 1024  # 100MB

# --- Authentication Configuration ---

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days

# Bcrypt rounds for password hashing (higher = more secure but slower)
BCRYPT_ROUNDS = 12

# --- Watermark Configuration ---

DEFAULT_WATERMARK_TEXT = "CourseHub"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process-wide settings handed to components at startup.

    Attributes:
        database_url: SQLAlchemy database URL.
        jwt_secret_key: Secret used to sign bearer credentials.
        jwt_algorithm: JWT signing algorithm.
        access_token_expire_minutes: Lifetime of issued credentials.
        bcrypt_rounds: Cost factor for password hashing.
        watermark_text: Text stamped onto uploaded PDFs.
        watermark_font_size: Font size of the watermark text.
        watermark_opacity: Fill opacity of the watermark text (0.0-1.0).
        watermark_rotate_degrees: Rotation of the watermark text.
        max_upload_size: Per-file upload ceiling in bytes.
        media_bucket: Bucket holding uploaded media.
        media_endpoint_url: S3-compatible endpoint, None for AWS.
        media_access_key: Access key for the media store.
        media_secret_key: Secret key for the media store.
        media_region: Region name for the media store.
        media_public_base_url: Public (CDN) base URL under which keys are served.
        expose_error_details: Whether unexpected error messages reach callers.
    """

    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str = JWT_ALGORITHM
    access_token_expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES
    bcrypt_rounds: int = BCRYPT_ROUNDS
    watermark_text: str = DEFAULT_WATERMARK_TEXT
    watermark_font_size: int = 48
    watermark_opacity: float = 0.15
    watermark_rotate_degrees: int = -45
    max_upload_size: int = MAX_UPLOAD_SIZE
    media_bucket: str = "course-hub-media"
    media_endpoint_url: Optional[str] = None
    media_access_key: Optional[str] = None
    media_secret_key: Optional[str] = None
    media_region: str = "us-east-1"
    media_public_base_url: str = ""
    expose_error_details: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Returns:
            Settings populated from the current environment.
        """
        bucket = os.getenv("MEDIA_BUCKET", "course-hub-media")
        endpoint = os.getenv("MEDIA_ENDPOINT_URL") or None
        default_public_base = (
            f"{endpoint.rstrip('/')}/{bucket}"
            if endpoint
            else f"https://{bucket}.s3.amazonaws.com"
        )
        return cls(
            database_url=os.getenv(
                "DATABASE_URL", f"sqlite:///{DATA_DIR}/course_hub.db"
            ),
            jwt_secret_key=os.getenv(
                "JWT_SECRET_KEY", "your-secret-key-change-in-production"
            ),
            access_token_expire_minutes=int(
                os.getenv(
                    "ACCESS_TOKEN_EXPIRE_MINUTES", str(ACCESS_TOKEN_EXPIRE_MINUTES)
                )
            ),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", str(BCRYPT_ROUNDS))),
            watermark_text=os.getenv("PDF_WATERMARK", DEFAULT_WATERMARK_TEXT),
            watermark_font_size=int(os.getenv("PDF_WATERMARK_FONT_SIZE", "48")),
            watermark_opacity=float(os.getenv("PDF_WATERMARK_OPACITY", "0.15")),
            media_bucket=bucket,
            media_endpoint_url=endpoint,
            media_access_key=os.getenv("MEDIA_ACCESS_KEY"),
            media_secret_key=os.getenv("MEDIA_SECRET_KEY"),
            media_region=os.getenv("MEDIA_REGION", "us-east-1"),
            media_public_base_url=os.getenv(
                "MEDIA_PUBLIC_BASE_URL", default_public_base
            ).rstrip("/"),
            expose_error_details=_env_bool("EXPOSE_ERROR_DETAILS"),
        )


@lru_cache()
def get_settings() -> Settings:
    """Get the cached process settings."""
    return Settings.from_env()

"""Application configuration loaded from the environment."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Config:
    """Default settings; override with a config object or APP_SETTINGS file."""

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        import warnings

        warnings.warn(
            "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION",
            RuntimeWarning,
            stacklevel=2,
        )
        SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///inkspace.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Object storage for portfolio images, booking references and attachments
    STORAGE_ROOT = os.getenv("STORAGE_ROOT", str(Path.cwd() / "storage"))
    STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "http://localhost:5000/storage")

    # External providers; missing keys only disable the feature that needs them
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY")

    NOTIFICATION_POLL_SECONDS = float(os.getenv("NOTIFICATION_POLL_SECONDS", "30"))
    NOTIFICATION_POLLING_ENABLED = _env_flag("NOTIFICATION_POLLING_ENABLED", "true")
    TOAST_DISMISS_SECONDS = float(os.getenv("TOAST_DISMISS_SECONDS", "3.0"))
    SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", "86400"))
    # Session stores unused this long are torn down and rebuilt on return
    STORE_IDLE_SECONDS = float(os.getenv("STORE_IDLE_SECONDS", "3600"))

    # Local admin login (__admin__/root) without a server-verified credential.
    # Security anti-pattern kept for development only; disable in production.
    DEV_ADMIN_BYPASS = _env_flag("DEV_ADMIN_BYPASS", "true")

    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class ProductionConfig(Config):
    DEV_ADMIN_BYPASS = _env_flag("DEV_ADMIN_BYPASS", "false")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"  # noqa: S105
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STORAGE_ROOT = tempfile.mkdtemp(prefix="inkspace-storage-")
    STORAGE_PUBLIC_URL = "http://testserver/storage"
    GEMINI_API_KEY = None
    GOOGLE_MAPS_API_KEY = None
    NOTIFICATION_POLLING_ENABLED = False
    DEV_ADMIN_BYPASS = True

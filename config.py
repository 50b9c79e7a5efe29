"""
Application settings.
Values come from the process environment, with a local .env file loaded first.
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# --- Load Environment Variables ---
load_dotenv()


class Settings(BaseModel):
    """
    Everything the app factory needs to build its stores and services.
    Tests construct this directly instead of going through the environment.
    """
    environment: str = "development"
    frontend_url: str = "http://localhost:4321"

    # Storage
    database_path: str = "data/database.json"
    questions_dir: str = "data/question-pairs"
    topic_paper_map_path: Optional[str] = None

    # Secrets
    encryption_key: str = "fallback-key-change-this-immediately"
    jwt_secret: str = "dev-access-secret-change"
    refresh_token_secret: str = "dev-refresh-secret-change"
    session_secret: str = "dev-session-secret-change"

    # Verification codes
    code_expiry_minutes: int = Field(default=15, ge=1)
    code_cooldown_seconds: int = Field(default=90, ge=0)
    max_code_attempts: int = Field(default=5, ge=1)
    code_cleanup_interval_seconds: int = Field(default=3600, ge=1)

    # GDPR retention window, 7 years by default
    data_retention_days: int = 2555

    # Outgoing mail (SMTP). Mail is skipped when user/password are missing.
    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: Optional[str] = None
    email_app_password: Optional[str] = None
    email_from: str = "Math Practice App <noreply@mathapp.com>"
    contact_to: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def load_settings() -> Settings:
    """Build Settings from environment variables, skipping the ones that are unset."""
    env_names = {
        "environment": "ENVIRONMENT",
        "frontend_url": "FRONTEND_URL",
        "database_path": "DATABASE_PATH",
        "questions_dir": "QUESTIONS_DIR",
        "topic_paper_map_path": "TOPIC_PAPER_MAP_PATH",
        "encryption_key": "ENCRYPTION_KEY",
        "jwt_secret": "JWT_SECRET",
        "refresh_token_secret": "REFRESH_TOKEN_SECRET",
        "session_secret": "SESSION_SECRET",
        "code_expiry_minutes": "CODE_EXPIRY_MINUTES",
        "code_cooldown_seconds": "CODE_COOLDOWN_SECONDS",
        "max_code_attempts": "MAX_CODE_ATTEMPTS",
        "code_cleanup_interval_seconds": "CODE_CLEANUP_INTERVAL_SECONDS",
        "data_retention_days": "DATA_RETENTION_DAYS",
        "email_host": "EMAIL_HOST",
        "email_port": "EMAIL_PORT",
        "email_user": "EMAIL_USER",
        "email_app_password": "EMAIL_APP_PASSWORD",
        "email_from": "EMAIL_FROM",
        "contact_to": "CONTACT_TO",
    }
    values = {}
    for field_name, env_name in env_names.items():
        raw = os.getenv(env_name)
        if raw is not None and raw != "":
            values[field_name] = raw
    # Pydantic coerces the numeric strings
    return Settings(**values)

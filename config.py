"""
Runtime configuration.

Settings are read from the environment (and an optional .env file) once at
process start and handed to the app factory.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).parent


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "old_age_home"
    secret_key: str = "change_this_secret"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(60, ge=1)
    upload_dir: str = str(ROOT_DIR / "uploads")
    max_upload_bytes: int = 10 * 1024 * 1024
    upcoming_window_days: int = Field(7, ge=1)
    cors_origins: List[str] = ["*"]
    environment: str = "production"
    log_level: str = "INFO"
    port: int = 8000

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls, env_file: Path = ROOT_DIR / ".env") -> "Settings":
        load_dotenv(env_file)
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            database_name=os.getenv("DATABASE_NAME", defaults.database_name),
            secret_key=os.getenv("SECRET_KEY", defaults.secret_key),
            algorithm=os.getenv("JWT_ALGORITHM", defaults.algorithm),
            access_token_expire_minutes=int(
                os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", defaults.access_token_expire_minutes)
            ),
            upload_dir=os.getenv("UPLOAD_DIR", defaults.upload_dir),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", defaults.max_upload_bytes)),
            upcoming_window_days=int(os.getenv("UPCOMING_WINDOW_DAYS", defaults.upcoming_window_days)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
            environment=os.getenv("APP_ENV", defaults.environment),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            port=int(os.getenv("PORT", defaults.port)),
        )

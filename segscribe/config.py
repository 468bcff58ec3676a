"""Application configuration management."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url


PROJECT_ROOT = Path(__file__).resolve().parents[1]
STORAGE_ROOT = PROJECT_ROOT / "storage"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Literal["development", "production", "testing"] = "development"

    # Database
    database_url: str = "sqlite+aiosqlite:///./segscribe.db"

    # Storage
    blob_storage_path: str = str(STORAGE_ROOT / "public")
    max_upload_bytes: int = 25 * 1024 * 1024  # provider rejects larger files

    # Transcription provider
    transcription_api_key: str = ""
    transcription_api_url: str = "https://api.openai.com/v1/audio/transcriptions"
    transcription_model: str = "whisper-1"
    transcription_timeout_seconds: float = 60.0
    blob_check_timeout_seconds: float = 5.0

    # Background processing
    max_concurrent_jobs: int = 3
    enable_sweeper: bool = True
    resubmit_interval_seconds: float = 60.0
    resubmit_page_size: int = 100
    resubmit_max_attempts: Optional[int] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "http://localhost:8000,http://127.0.0.1:8000"
    speech_segment_rate_limit: int = 5  # requests per minute per client

    # Logging
    log_level: str = "INFO"
    log_dir: str = str(PROJECT_ROOT / "logs")

    model_config = SettingsConfigDict(env_file=(".env.test", ".env"), case_sensitive=False)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        env_var = os.getenv("ENVIRONMENT", "").lower() == "testing"
        pytest_flag = bool(os.getenv("PYTEST_CURRENT_TEST"))
        return self.environment == "testing" or env_var or pytest_flag

    @field_validator("transcription_api_key")
    @classmethod
    def validate_api_key(cls, v: str, info) -> str:
        """Require a provider credential in production."""
        env = info.data.get("environment", "development")
        if env == "production" and not v.strip():
            raise ValueError(
                "TRANSCRIPTION_API_KEY must be set in production. "
                "Segments cannot be transcribed without a provider credential."
            )
        return v

    @field_validator("resubmit_page_size", "max_concurrent_jobs")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_storage_path(self) -> "Settings":
        """Ensure the blob storage directory exists."""
        Path(self.blob_storage_path).mkdir(parents=True, exist_ok=True)
        return self

    @model_validator(mode="after")
    def normalize_database_path(self) -> "Settings":
        """Ensure SQLite URLs point to the project root regardless of CWD."""
        try:
            url = make_url(self.database_url)
        except Exception:
            return self

        if not url.get_backend_name().startswith("sqlite"):
            return self

        db_path = url.database
        if not db_path or db_path == ":memory:":
            return self

        path_obj = Path(db_path)
        if not path_obj.is_absolute():
            abs_path = (PROJECT_ROOT / path_obj).resolve()
            url = url.set(database=str(abs_path))
            self.database_url = url.render_as_string(hide_password=False)
        return self


# Global settings instance
settings = Settings()
if settings.is_testing:
    settings.environment = "testing"

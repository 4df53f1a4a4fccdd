"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional
import os


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./data/app.db"

    # Application
    APP_NAME: str = "Sentinel Dashboard API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 8080

    # API
    API_PREFIX: str = "/api"
    # Stored as string to avoid pydantic-settings JSON parsing; use cors_origins_list property
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Bootstrap API key for the default organization (generated if not set)
    API_KEY: Optional[str] = None

    # Firebase Realtime Database (detection event feed)
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_FILE: str = "./config/firebase-credentials.json"
    FIREBASE_DATABASE_URL: Optional[str] = None  # Defaults to https://{project}.firebaseio.com
    FIREBASE_STORAGE_BUCKET: Optional[str] = None
    FIREBASE_LOGS_PATH: str = "logs"
    FIREBASE_POLL_INTERVAL: float = 5.0

    # Sync pipeline
    SYNC_ENABLED: bool = True
    SYNC_BACKFILL_LIMIT: int = 1000
    SYNC_SHUTDOWN_TIMEOUT: float = 10.0

    @field_validator('FIREBASE_POLL_INTERVAL', 'SYNC_SHUTDOWN_TIMEOUT', mode='after')
    @classmethod
    def validate_positive_interval(cls, v: float) -> float:
        """Intervals and timeouts must be positive."""
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator('SYNC_BACKFILL_LIMIT', mode='after')
    @classmethod
    def validate_backfill_limit(cls, v: int) -> int:
        if v < 0:
            raise ValueError("SYNC_BACKFILL_LIMIT cannot be negative")
        return v

    @property
    def firebase_database_url(self) -> Optional[str]:
        """Realtime Database URL, derived from the project ID when not set explicitly."""
        if self.FIREBASE_DATABASE_URL:
            return self.FIREBASE_DATABASE_URL
        if self.FIREBASE_PROJECT_ID:
            return f"https://{self.FIREBASE_PROJECT_ID}.firebaseio.com"
        return None

    @property
    def firebase_ready(self) -> bool:
        """Check if Firebase is properly configured and ready to use."""
        return (
            self.FIREBASE_PROJECT_ID is not None
            and os.path.exists(self.FIREBASE_CREDENTIALS_FILE)
        )

    # Redis cache for reporting queries
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENABLED: bool = True
    REDIS_SOCKET_TIMEOUT: float = 2.0
    CACHE_TTL_SECONDS: int = 3600

    # Rate limiting (per client IP, fixed window)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_MAX: int = 100
    RATE_LIMIT_DURATION: int = 60  # seconds
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Face image storage
    STORAGE_BACKEND: str = "local"  # local or firebase
    STORAGE_PATH: str = "./storage/faces"
    STORAGE_BASE_URL: str = "http://localhost:8080/api/faces/files"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    @field_validator('STORAGE_BACKEND', mode='after')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate storage backend name."""
        valid_backends = ['local', 'firebase']
        if v not in valid_backends:
            raise ValueError(f"STORAGE_BACKEND must be one of {valid_backends}")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


# Global settings instance
settings = Settings()

"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All config comes from env vars or .env file."""

    DATABASE_URL: str = "sqlite+aiosqlite:///./files.db"
    FILE_STORAGE_TYPE: str = "local"  # "local" or "memory"
    FILE_STORAGE_PATH: str = "./uploads"
    FILE_STREAM_CHUNK_SIZE: int = 64 * 1024
    API_PORT: int = 3000
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    # Orphan blob reconciliation
    ORPHAN_SCAN_INTERVAL: float = 3600.0  # seconds; 0 disables the periodic loop
    ORPHAN_GRACE_SECONDS: float = 300.0
    PARTIAL_UPLOAD_MAX_AGE: float = 3600.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()

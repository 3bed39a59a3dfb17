"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # GitHub API
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_BASE_URL: str = "https://api.github.com"
    GITHUB_HOST: str = "github.com"

    # GitHub client resilience controls
    GITHUB_TIMEOUT_SECONDS: float = 30.0
    GITHUB_MAX_RETRIES: int = 3
    GITHUB_BACKOFF_BASE_SECONDS: float = 1.0
    GITHUB_BACKOFF_MAX_SECONDS: float = 16.0
    GITHUB_RATE_LIMIT_BUFFER_SECONDS: int = 2
    GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS: float = 60.0
    GITHUB_CONCURRENCY: int = 4  # Repositories fetched in parallel

    USER_AGENT: str = "reposync/1.0"

    # Sync inputs/outputs (relative to the working directory)
    SYNC_SOURCE_PATH: str = "data/projects.json"
    SYNC_OUTPUT_PATH: str = ".github/sync-metadata.json"
    SYNC_REFERENCE_FIELD: str = "github"

    # README preview
    README_PREVIEW_MAX_CHARS: int = 500

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()

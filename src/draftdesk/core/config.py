"""
Application Configuration

Centralized settings management using Pydantic BaseSettings.
All values are loaded from environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable binding.

    Required env vars (no defaults):
        POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_HOST, POSTGRES_DB
        (unless SQLALCHEMY_DATABASE_URL is given)

    Optional env vars:
        POSTGRES_PORT (5432), LOG_LEVEL (INFO), WORKER_URL, WORKER_TIMEOUT (10s),
        WORKER_CALLBACK_SECRET, POLL_INTERVAL_SECONDS (5),
        AUTOSAVE_DELAY_SECONDS (2), STUCK_JOB_AFTER_SECONDS (900)
    """

    PROJECT_NAME: str = "DraftDesk"

    # Database
    POSTGRES_USER: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = ""
    # Full URL override (tests use sqlite+aiosqlite)
    SQLALCHEMY_DATABASE_URL: str | None = None

    # Logging
    LOG_LEVEL: str = "INFO"

    # Extraction worker
    WORKER_URL: str = "http://localhost:8090/jobs"
    WORKER_TIMEOUT: float = 10.0
    WORKER_CALLBACK_SECRET: str | None = None

    # Intake / versions
    POLL_INTERVAL_SECONDS: float = 5.0
    AUTOSAVE_DELAY_SECONDS: float = 2.0
    STUCK_JOB_AFTER_SECONDS: int = 900

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",  # Silently ignore unknown env vars
    )

    @property
    def DATABASE_URL(self) -> str:
        """Async connection string (asyncpg driver unless overridden)."""
        if self.SQLALCHEMY_DATABASE_URL:
            return self.SQLALCHEMY_DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()

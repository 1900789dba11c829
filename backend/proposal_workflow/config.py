from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Proposal Workflow"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://proposals:proposals_pass@db:5432/proposals_db"

    # JWT
    JWT_SECRET_KEY: str = "change-this-to-a-secure-random-string"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Workflow
    PROPOSAL_REVIEWER_ID: Optional[int] = None

    # Notifications
    NOTIFICATION_RETENTION_DAYS: int = 30
    NOTIFICATION_DEFAULT_PAGE_SIZE: int = 20

    # Audit
    AUDIT_EXPORT_VERSION: str = "1.0"

    # Client driver
    API_BASE_URL: str = "http://localhost:8000/api/v1"
    CLIENT_MAX_RETRIES: int = 3
    CLIENT_TIMEOUT_SECONDS: float = 30.0
    CLIENT_BACKOFF: str = "exponential"  # linear, exponential
    CLIENT_BACKOFF_BASE_SECONDS: float = 1.0
    CLIENT_BACKOFF_MAX_SECONDS: float = 10.0

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    model_config = {"env_file": ".env", "case_sensitive": True}


settings = Settings()

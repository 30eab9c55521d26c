"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "reimbursement_dev"

    # Identity provider tokens (HS256, issued by the auth service)
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    # Skip signature checks for tokens from a local auth emulator (development only)
    allow_unverified_tokens: bool = False

    # Mail API (Microsoft Graph, client credentials)
    mail_enabled: bool = True
    mail_tenant_id: str = ""
    mail_client_id: str = ""
    mail_client_secret: str = ""
    mail_sender: str = ""

    # Storage for receipts and voucher PDFs
    storage_base_path: str = "./storage"
    signed_url_secret: str = "change-me-too"
    signed_url_ttl_seconds: int = 3600

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Frontend URL (for email links and invite URLs)
    frontend_url: str = "http://localhost:3000"

    # Scheduler
    scheduler_interval_seconds: int = 10  # Process notifications every 10 seconds
    notification_max_retries: int = 5
    notification_lock_duration_seconds: int = 60
    stale_lock_cleanup_minutes: int = 10

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def scheduler_enabled(self) -> bool:
        """The outbox scheduler runs everywhere except under test"""
        return self.environment.lower() not in ("testing", "test")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

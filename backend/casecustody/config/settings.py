"""Application Settings - Central Configuration"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # Storage backend: "mongo" for the document store, "memory" for dev/tests
    storage_backend: str = "mongo"
    
    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "case_custody_dev"
    
    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"
    
    # Lock window
    auto_lock_days: int = 35  # Editing window after first send
    
    # Retention
    soft_delete_retention_days: int = 7  # Soft-deleted reports purged after this
    archive_after_hours: int = 48  # Sent reports move to the archived view after this
    sent_retention_days: int = 30  # Sent reports purged from the live list after this
    
    # Scheduler
    retention_sweep_interval_seconds: int = 3600
    
    # Environment
    environment: str = "development"
    debug: bool = True
    
    @property
    def uses_memory_store(self) -> bool:
        """Check if the in-memory store is configured"""
        return self.storage_backend.lower() == "memory"
    
    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

"""
StockLedger - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "StockLedger"
    app_env: str = "development"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"
    
    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    # Default store, used for development and migrations
    database_url_async: str = "sqlite+aiosqlite:///./stockledger.db"
    # Per-tenant store; {client_code} is replaced with the lower-cased client code
    tenant_database_url_template: str = "sqlite+aiosqlite:///./stockledger_{client_code}.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    # Create tables on first use of a tenant store (development only)
    auto_create_tables: bool = True
    
    # ===========================================
    # REDIS CONFIGURATION
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    
    # ===========================================
    # TENANTS
    # ===========================================
    # Comma-separated client codes processed by scheduled jobs
    tenant_codes: str = ""
    tenant_header_name: str = "X-Client-Code"
    
    # ===========================================
    # INVENTORY LIMITS
    # ===========================================
    max_bulk_items: int = 100
    max_balance_range_days: int = 366
    default_page_size: int = 20
    
    # ===========================================
    # BALANCE JOB SCHEDULE
    # ===========================================
    balance_job_hour: int = 0
    balance_job_minute: int = 30
    
    # ===========================================
    # CORS CONFIGURATION
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:8000"
    
    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
    
    @property
    def tenant_codes_list(self) -> List[str]:
        """Parse tenant client codes from comma-separated string."""
        return [code.strip() for code in self.tenant_codes.split(",") if code.strip()]
    
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"
    
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Global settings instance
settings = get_settings()

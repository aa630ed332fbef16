"""
Configuration module for the location verification service
Loads environment variables and provides settings
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    # Application
    APP_ENV: str = "development"
    APP_DEBUG: bool = False
    SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    CORS_ORIGINS: str = "*"
    
    # Database
    DATABASE_URL: str = "postgresql://tp:tp@postgres:5432/tp_location"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    
    # Geofencing
    DEFAULT_GEOFENCE_RADIUS_M: int = 100
    
    # Anti-cheating
    SHARED_DEVICE_LOOKUP_LIMIT: int = 5
    
    # Admin views
    STATS_WINDOW_DAYS: int = 30
    ADMIN_LOGS_DEFAULT_LIMIT: int = 50
    ADMIN_LOGS_MAX_LIMIT: int = 200
    
    # Feature toggle gating the supervisor endpoints
    LOCATION_TRACKING_FEATURE_KEY: str = "supervisor_location_tracking"
    
    class Config:
        env_file = ".env"
        extra = "allow"
    
    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"
    
    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

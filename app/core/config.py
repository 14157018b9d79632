# app/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from .env"""

    # === Database ===
    DATABASE_URL: str
    DATABASE_TEST_URL: Optional[str] = None

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        """Ensure database URL is safe for current environment"""
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env == "production" and "localhost" in v:
            raise ValueError("🚨 Production environment cannot use localhost database!")
        return v

    # === Celery ===
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # === JWT (tokens are issued by the auth provider) ===
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # === CORS ===
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:3001", "http://localhost:3002"]
    ALLOWED_METHODS: List[str] = ["*"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # === WhatsApp campaign API ===
    WHATSAPP_ENABLED: bool = True
    WHATSAPP_API_URL: str = "https://backend.api-wa.co/campaign/entit/api/v2"
    WHATSAPP_API_KEY: Optional[str] = None
    WHATSAPP_USER_NAME: str = "जिला प्रशासन रायपुर"
    WHATSAPP_SOURCE: str = "new-landing-page form"
    WHATSAPP_SEND_DELAY_SECONDS: float = 1.0
    WHATSAPP_TOP_CAMPAIGN: str = "Top_Perfomer_API"
    WHATSAPP_BOTTOM_CAMPAIGN: str = "Bottom_Performer"
    WHATSAPP_MIDDLE_CAMPAIGN: str = "Medium_Perfomer_API"

    # === Reports ===
    REPORT_TEMPLATE_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates", "reports")

    # === System ===
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    TIMEZONE: str = "Asia/Kolkata"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Create a global settings instance
settings = Settings()

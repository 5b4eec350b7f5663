from pydantic_settings import BaseSettings
from typing import List
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "ICT Academy API"
    APP_ENV: str = "development"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ENABLE_API_DOCS: bool = True

    # Database
    DATABASE_URL: str = "sqlite:///./ictacademy.db"

    # Redis (only used when OTP_STORE_BACKEND=redis)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days
    RESET_TOKEN_EXPIRE_MINUTES: int = 10

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080"

    @property
    def origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Phone numbers (Sri Lanka)
    COUNTRY_CODE: str = "94"
    PHONE_LOGIN_DOMAIN: str = "phone.ictacademy.lk"

    # OTP
    OTP_TTL_SECONDS: int = 300  # 5 minutes
    OTP_LENGTH: int = 6
    OTP_STORE_BACKEND: str = "database"  # database, redis

    # SMS API (Text.lk)
    SMS_BACKEND: str = "log"  # textlk, log
    TEXTLK_API_URL: str = "https://app.text.lk/api/v3/sms/send"
    TEXTLK_API_TOKEN: str = ""
    TEXTLK_SENDER_ID: str = "A/L ICT"
    SMS_TIMEOUT_SECONDS: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

# Create settings instance
settings = Settings()

if settings.LOG_FILE:
    os.makedirs(os.path.dirname(settings.LOG_FILE) or ".", exist_ok=True)

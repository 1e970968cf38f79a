from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import List
import os

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./property_verify.db")
    SQL_ECHO: bool = False

    # JWT
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me-dev-secret-change-me")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
    BCRYPT_ROUNDS: int = 12

    # App
    APP_NAME: str = os.getenv("APP_NAME", "PropertyVerify API")
    DEBUG: bool = os.getenv("DEBUG", "True") == "True"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]
    FRONTEND_URL: str = "http://localhost:3000"

    # Payments (Paystack-compatible gateway)
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYMENT_TIMEOUT_SECONDS: float = 15.0
    # Gateway amounts are in kobo
    PAYMENT_MINOR_UNIT_MULTIPLIER: int = 100

    # Notifications
    ADMIN_PHONE: str = ""
    ADMIN_EMAIL: str = ""
    SMS_BACKEND: str = "console"
    EMAIL_BACKEND: str = "console"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""

    # Media
    MEDIA_ROOT: str = "media"
    BASE_URL: str = "http://localhost:8000"

    # Verification
    CERTIFICATE_VALIDITY_DAYS: int = 365

    @property
    def database_url(self) -> str:
        # Some managed providers still hand out postgres:// which SQLAlchemy rejects
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

settings = Settings()

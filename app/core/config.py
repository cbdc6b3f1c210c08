import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from typing import List

load_dotenv()

DEFAULT_CORS_ORIGINS = ["https://boardfinder.vercel.app", "http://localhost:3000"]


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "boardfinder"

    SECRET_KEY: str = os.getenv("SECRET_KEY", "supersecretkey")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    # Session tokens live for 7 days
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))

    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "")

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")

    OTP_COOLDOWN_SECONDS: int = int(os.getenv("OTP_COOLDOWN_SECONDS", "120"))
    OTP_REGISTER_EXPIRY_MINUTES: int = int(os.getenv("OTP_REGISTER_EXPIRY_MINUTES", "5"))
    OTP_RESET_EXPIRY_MINUTES: int = int(os.getenv("OTP_RESET_EXPIRY_MINUTES", "10"))
    OTP_MAX_ATTEMPTS: int = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))
    OTP_CLEANUP_INTERVAL_MINUTES: int = int(os.getenv("OTP_CLEANUP_INTERVAL_MINUTES", "10"))
    # Logs codes instead of failing when SMTP is not configured. Never enable in production.
    OTP_DEBUG_LOG: bool = _env_flag("OTP_DEBUG_LOG")

    MIN_PASSWORD_LENGTH: int = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))

    class Config:
        case_sensitive = True


def get_cors_origins() -> List[str]:
    """
    Get the CORS origins from environment or use defaults
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        # Handle comma-separated list from environment variable
        origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
        if origins:
            return origins

    return DEFAULT_CORS_ORIGINS

settings = Settings()

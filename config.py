import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _split_origins(raw: str) -> list:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("PORT", os.getenv("API_PORT", "3004")))
    cors_origins: list = field(default_factory=lambda: _split_origins(os.getenv("CORS_ORIGINS", "*")))

    # Database settings
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///library.db")
    database_timeout: float = float(os.getenv("DATABASE_TIMEOUT", "5"))

    # Circulation settings
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))
    default_role: str = os.getenv("DEFAULT_ROLE", "student")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Backend")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()

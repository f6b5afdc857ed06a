import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _origins(value: str) -> list:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Config:
    APP_ENV = os.getenv("APP_ENV", "development").lower()
    DEBUG = APP_ENV not in {"prod", "production"}

    # Storage
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "")
    AZURE_STORAGE_CONNECTION_STRING = os.getenv("AZURE_STORAGE_CONNECTION_STRING")
    AZURE_TABLE_NAME = os.getenv("AZURE_TABLE_NAME", "trafikkvakt")
    DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'trafikkvakt.db')}")
    DATA_DIR = os.getenv("DATA_DIR", os.path.join(BASE_DIR, "data"))
    STORAGE_FALLBACK = _flag("STORAGE_FALLBACK", "1")

    # WhatsApp Business Cloud API
    WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN")
    WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID")
    WHATSAPP_BUSINESS_ACCOUNT_ID = os.getenv("WHATSAPP_BUSINESS_ACCOUNT_ID")
    WHATSAPP_RECIPIENT_NUMBER = os.getenv("WHATSAPP_RECIPIENT_NUMBER")
    WHATSAPP_API_VERSION = os.getenv("WHATSAPP_API_VERSION", "v22.0")

    # Notifications
    WHATSAPP_NOTIFICATIONS_ENABLED = _flag("WHATSAPP_NOTIFICATIONS_ENABLED", "false")
    NOTIFICATION_TIME = os.getenv("NOTIFICATION_TIME", "07:00")
    NOTIFICATION_TIMEZONE = os.getenv("NOTIFICATION_TIMEZONE", "Europe/Oslo")
    START_SCHEDULER = _flag("START_SCHEDULER", "1")

    CORS_ALLOWED_ORIGINS = _origins(
        os.getenv(
            "CORS_ALLOWED_ORIGINS",
            "https://trafikkvakt.azurewebsites.net,http://localhost:3000,http://localhost:3001,http://localhost:5173",
        )
    )
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

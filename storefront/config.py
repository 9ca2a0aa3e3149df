import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env from the project root (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
IS_PRODUCTION = APP_ENV == "production"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

SESSION_SECRET = os.getenv("SESSION_SECRET")
if not SESSION_SECRET:
    raise RuntimeError("SESSION_SECRET is not set. Check your .env file.")

SESSION_COOKIE = "storefront_session"
SESSION_MAX_AGE = 30 * 24 * 3600
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", IS_PRODUCTION)

# Credentials below are read at call time.
def stripe_secret_key():
    return os.getenv("STRIPE_SECRET_KEY", "")


def stripe_webhook_secret():
    return os.getenv("STRIPE_WEBHOOK_SECRET", "")


def email_user():
    return os.getenv("EMAIL_USER", "")


def email_pass():
    return os.getenv("EMAIL_PASS", "")


def admin_email():
    return os.getenv("ADMIN_EMAIL", "")


def admin_password():
    return os.getenv("ADMIN_PASSWORD", "")


ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin User")

SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
EMAIL_MAX_RETRIES = int(os.getenv("EMAIL_MAX_RETRIES", "3"))
EMAIL_RETRY_DELAY_SECONDS = float(os.getenv("EMAIL_RETRY_DELAY_SECONDS", "1"))

ORG_NAME = os.getenv("ORG_NAME", "Mawu Foundation")
ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "MF")

FRONTEND_URL = os.getenv("FRONTEND_URL", "")
if os.getenv("CORS_ORIGINS"):
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS").split(",") if o.strip()]
elif IS_PRODUCTION:
    CORS_ORIGINS = [FRONTEND_URL] if FRONTEND_URL else []
else:
    CORS_ORIGINS = [
        "http://localhost:5173",
        "http://localhost:5000",
        "http://localhost:3000",
    ]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

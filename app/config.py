# app/config.py

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value in (None, ""):
        return default
    return int(value)


# =========================
# Security
# =========================
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-later")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
DEBUG = os.getenv("DEBUG", "0") == "1"

# =========================
# Database
# =========================
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barbershop.db")
DB_ECHO = os.getenv("DB_ECHO", "0") == "1"

# =========================
# Booking rules
# =========================
TIMEZONE = os.getenv("TIMEZONE", "Asia/Ho_Chi_Minh")
SLOT_MINUTES = _env_int("SLOT_MINUTES", 30)
BOOKING_MAX_ADVANCE_DAYS = _env_int("BOOKING_MAX_ADVANCE_DAYS", 30)
BOOKING_CODE_PREFIX = "RB"
DEFAULT_OPEN_TIME = os.getenv("DEFAULT_OPEN_TIME", "08:30")
DEFAULT_CLOSE_TIME = os.getenv("DEFAULT_CLOSE_TIME", "20:30")

# =========================
# Payments
# =========================
PAYMENT_TIMEOUT_MINUTES = _env_int("PAYMENT_TIMEOUT_MINUTES", 15)
PAYMENT_POLL_INTERVAL_SECONDS = _env_int("PAYMENT_POLL_INTERVAL_SECONDS", 3)
SEPAY_WEBHOOK_SECRET = os.getenv("SEPAY_WEBHOOK_SECRET", "")
VIETQR_IMAGE_URL = os.getenv("VIETQR_IMAGE_URL", "https://img.vietqr.io/image")
VIETQR_TEMPLATE = os.getenv("VIETQR_TEMPLATE", "compact2")

# Base URL the payment poller talks to
API_URL = os.getenv("API_URL", "http://localhost:8000")

# =========================
# Logging
# =========================
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

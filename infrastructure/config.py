import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Security
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Pricing
DEFAULT_CURRENCY_CODE = os.getenv("DEFAULT_CURRENCY_CODE", "DZD")
SERVICE_FEE_RATE = Decimal(os.getenv("SERVICE_FEE_RATE", "0.12"))
CURRENCY_CACHE_TTL_SECONDS = int(os.getenv("CURRENCY_CACHE_TTL_SECONDS", "300"))

# Bookings
RESERVATION_LOCK_MINUTES = int(os.getenv("RESERVATION_LOCK_MINUTES", "15"))
# how far ahead a check-out date may be, two years by default
MAX_BOOKING_WINDOW_DAYS = int(os.getenv("MAX_BOOKING_WINDOW_DAYS", "730"))

# Audit
AUDIT_RETENTION_DAYS = int(os.getenv("AUDIT_RETENTION_DAYS", "365"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

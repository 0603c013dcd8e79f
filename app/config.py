import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./herhaven.db")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Twilio SMS Configuration (platform-wide account used for SOS alerts)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")
# Optional - when set, Twilio picks the sender from the messaging service pool
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

# Local timezone used to decide what "today" and "now" mean for appointment slots
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Africa/Kigali")

# Emergency service numbers appended to every SOS text
EMERGENCY_NUMBERS = os.getenv("EMERGENCY_NUMBERS", "112, 3029")

# Frontend base URL, used as the default CORS origin
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

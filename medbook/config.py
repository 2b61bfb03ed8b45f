import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medbook.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer tokens issued at login (hours)
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))
# Email verification link lifetime (seconds)
VERIFICATION_TOKEN_MAX_AGE = int(os.getenv("VERIFICATION_TOKEN_MAX_AGE", "3600"))
# Password reset token lifetime (minutes)
RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))

# Public base URL of this API (email verification links point here)
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")

# Frontend base URL for redirects and email links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")

# Issues practitioner registration keys via POST /add/key
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Dodo Payments Configuration
DODO_PAYMENTS_API_KEY = os.getenv("DODO_PAYMENTS_API_KEY")
DODO_PAYMENTS_WEBHOOK_SECRET = os.getenv("DODO_PAYMENTS_WEBHOOK_SECRET")
# A delivery still marked received after this long is treated as abandoned and reprocessed
WEBHOOK_CLAIM_TIMEOUT_SECONDS = int(os.getenv("WEBHOOK_CLAIM_TIMEOUT_SECONDS", "120"))
# "test_mode" or "live_mode" - default to test for safety
DODO_PAYMENTS_ENVIRONMENT = os.getenv("DODO_PAYMENTS_ENVIRONMENT", "test_mode")
# Pay-what-you-want product used for every consultation; the amount is set per checkout
DODO_ADHOC_PRODUCT_ID = os.getenv("DODO_ADHOC_PRODUCT_ID")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "EUR")

# Whereby meeting rooms
WHEREBY_API_KEY = os.getenv("WHEREBY_API_KEY")
WHEREBY_API_URL = os.getenv("WHEREBY_API_URL", "https://api.whereby.dev/v1")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "MedBook <noreply@medbook.lt>")

# Working hours are declared in this timezone
PRACTITIONER_TIMEZONE = os.getenv("PRACTITIONER_TIMEZONE", "UTC")

# Rate limiting (Redis is optional; counters fall back to process memory)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
REDIS_URL = os.getenv("REDIS_URL")

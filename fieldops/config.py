import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldops.db")

# Hosted auth (HS256 JWT secret shared with the auth provider)
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE")  # e.g. "authenticated"
AUTH_JWT_ALGORITHM = "HS256"

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

if not AUTH_JWT_SECRET:
    AUTH_JWT_SECRET = SECRET_KEY

# Frontend base URL for links in emails and redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "FieldOps Pro <noreply@fieldops.pro>")

# Square OAuth Configuration
SQUARE_ENVIRONMENT = os.getenv("SQUARE_ENVIRONMENT", "sandbox")  # sandbox or production
SQUARE_APPLICATION_ID = os.getenv("SQUARE_APPLICATION_ID")
SQUARE_APPLICATION_SECRET = os.getenv("SQUARE_APPLICATION_SECRET")
SQUARE_REDIRECT_URI = os.getenv("SQUARE_REDIRECT_URI", f"{FRONTEND_URL}/auth/square/callback")
SQUARE_ENCRYPTION_KEY = os.getenv(
    "SQUARE_ENCRYPTION_KEY"
)  # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"

# Automation scheduler
AUTOMATION_CRON_SECRET = os.getenv("AUTOMATION_CRON_SECRET")
AUTOMATION_BATCH_SIZE = int(os.getenv("AUTOMATION_BATCH_SIZE", "25"))

# Inbound email webhook
EMAIL_WEBHOOK_SECRET = os.getenv("EMAIL_WEBHOOK_SECRET")
EMAIL_BATCH_SIZE = int(os.getenv("EMAIL_BATCH_SIZE", "10"))

# Demo mode lets users without a membership browse a shared demo account
DEMO_MODE = os.getenv("DEMO_MODE", "false").lower() == "true"
DEMO_ACCOUNT_ID = int(os.getenv("DEMO_ACCOUNT_ID", "0")) or None

import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from the .env file
load_dotenv()


def _csv(value):
    return [item.strip() for item in (value or "").split(",") if item.strip()]


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database settings
DATABASE_URL_ASYNC = os.getenv("DATABASE_URL_ASYNC")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "").lower() in ("1", "true", "yes")

# Business rules
COMMISSION_RATE = Decimal("0.10")  # 10% commission
MIN_PAYOUT_AMOUNT = Decimal("50")  # Minimum amount in GBP for payouts
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "gbp")
ADMIN_EMAILS = _csv(os.getenv("ADMIN_EMAILS"))
SITE_URL = os.getenv("SITE_URL", "https://kenyaonabudgetsafaris.co.uk")

# Outbound mail
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "Kenya on a Budget Safaris")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
EMAIL_RELAY_URL = os.getenv("EMAIL_RELAY_URL")
EMAIL_SEND_ATTEMPTS = int(os.getenv("EMAIL_SEND_ATTEMPTS", "3"))
EMAIL_RETRY_DELAY_SECONDS = float(os.getenv("EMAIL_RETRY_DELAY_SECONDS", "2"))
EMAIL_RELAY_TIMEOUT_SECONDS = float(os.getenv("EMAIL_RELAY_TIMEOUT_SECONDS", "30"))
EMAIL_MAX_QUEUE_ATTEMPTS = int(os.getenv("EMAIL_MAX_QUEUE_ATTEMPTS", "5"))
EMAIL_REQUEUE_INTERVAL_MINUTES = int(os.getenv("EMAIL_REQUEUE_INTERVAL_MINUTES", "10"))

# Auth
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days
ALGORITHM = os.getenv("ALGORITHM", "HS256")
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")  # should be kept secret

# HTTP
API_BASE_PATH = os.getenv("API_BASE_PATH", "/api")
CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS")) or [
    "https://kenyaonabudgetsafaris.co.uk",
    "http://localhost:3000",
]

# Keep-alive between instances
SERVER_NAME = os.getenv("SERVER_NAME", "affiliate-tracker")
CURRENT_SERVER_URL = os.getenv("CURRENT_SERVER_URL", "")
PEER_SERVERS = _csv(os.getenv("PEER_SERVERS"))
PING_INTERVAL_MINUTES = int(os.getenv("PING_INTERVAL_MINUTES", "14"))

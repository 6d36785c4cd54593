"""Application configuration module.

Provides environment-specific settings with sane, secure defaults.
"""
import os
from pathlib import Path
from datetime import timedelta

from dotenv import load_dotenv

from .utils import env_bool, env_list


BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent
INSTANCE_DIR = PROJECT_ROOT / "instance"
DEFAULT_DB_PATH = INSTANCE_DIR / "database.sqlite"

load_dotenv(PROJECT_ROOT / ".env")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or f"sqlite:///{DEFAULT_DB_PATH}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_NAME = "Smart Invoice"
    PERMANENT_SESSION_LIFETIME = timedelta(minutes=45)
    PREFERRED_URL_SCHEME = os.environ.get("PREFERRED_URL_SCHEME", "https")
    MAX_CONTENT_LENGTH = 1024 * 1024  # webhook payloads are small

    # Fallback origin when a request does not carry an Origin header
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5173")
    CORS_ALLOWED_ORIGINS = env_list("CORS_ALLOWED_ORIGINS", ["*"])

    # Hosted auth provider (HS256 JWTs)
    AUTH_JWT_SECRET = os.environ.get("AUTH_JWT_SECRET", "")
    AUTH_JWT_ALGORITHM = os.environ.get("AUTH_JWT_ALGORITHM", "HS256")
    AUTH_JWT_AUDIENCE = os.environ.get("AUTH_JWT_AUDIENCE", "authenticated")

    # Stripe
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_PLATFORM_ACCOUNT_ID = os.environ.get("STRIPE_PLATFORM_ACCOUNT_ID", "")
    STRIPE_API_VERSION = os.environ.get("STRIPE_API_VERSION", "2023-10-16")
    STRIPE_MAX_NETWORK_RETRIES = int(os.environ.get("STRIPE_MAX_NETWORK_RETRIES", "0"))
    STRIPE_MIN_CHARGE_CENTS = 50
    CHECKOUT_CURRENCY = os.environ.get("CHECKOUT_CURRENCY", "usd")

    # Stripe Connect onboarding destinations
    CONNECT_REFRESH_URL = os.environ.get("CONNECT_REFRESH_URL", "http://localhost:5173/profile?stripe_refresh=true")
    CONNECT_RETURN_URL = os.environ.get("CONNECT_RETURN_URL", "http://localhost:5173/profile?stripe_success=true")
    CONNECT_DASHBOARD_URL = os.environ.get("CONNECT_DASHBOARD_URL", "http://localhost:5173/")

    # SMS notification providers
    TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_PHONE_NUMBER = os.environ.get("TWILIO_PHONE_NUMBER", "")
    VONAGE_API_KEY = os.environ.get("VONAGE_API_KEY", "")
    VONAGE_API_SECRET = os.environ.get("VONAGE_API_SECRET", "")
    SMS_SENDER_NAME = os.environ.get("SMS_SENDER_NAME", "SmartInvoice")
    SMS_TIMEOUT_SECONDS = float(os.environ.get("SMS_TIMEOUT_SECONDS", "10"))
    SMS_ENABLED = env_bool("SMS_ENABLED", True)


class DevelopmentConfig(Config):
    DEBUG = True
    ENV = "development"


class ProductionConfig(Config):
    DEBUG = False
    ENV = "production"
    CORS_ALLOWED_ORIGINS = env_list("CORS_ALLOWED_ORIGINS", [])


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTH_JWT_SECRET = "test-jwt-secret"
    STRIPE_SECRET_KEY = "sk_test_123"
    STRIPE_WEBHOOK_SECRET = "whsec_test_123"
    STRIPE_PLATFORM_ACCOUNT_ID = "acct_platform"
    APP_BASE_URL = "https://app.example.test"
    CONNECT_DASHBOARD_URL = "https://app.example.test/"
    TWILIO_ACCOUNT_SID = ""
    VONAGE_API_KEY = ""

# config.py

import os
import logging
from dotenv import load_dotenv

# Get the base directory of the application
basedir = os.path.abspath(os.path.dirname(__file__))

# Loads the .env file sitting in the repository root.
load_dotenv(os.path.join(basedir, '..', '.env'))
# --------------------------------------

logger = logging.getLogger(__name__)


class Config:
    """
    Contains all the configuration variables for the application,
    including database settings, third-party credentials and the
    marketplace business constants.
    """
    # --- Database Settings ---
    # Reads the database URL from the .env file.
    # Provides a default (e.g., for SQLite) if the variable isn't set.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'harvests.db')

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Secret Key ---
    SECRET_KEY = os.environ.get('SECRET_KEY')

    # 'development' adds stack traces to 500 responses
    ENVIRONMENT = os.environ.get('ENVIRONMENT') or 'production'

    # --- Supabase ---
    SUPABASE_URL = os.environ.get('SUPABASE_URL')
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY')
    SUPABASE_JWT_SECRET = os.environ.get('SUPABASE_JWT_SECRET')

    # --- Stripe ---
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')

    # --- AI Gateway (batch optimization) ---
    AI_GATEWAY_API_KEY = os.environ.get('LOVABLE_API_KEY')
    AI_GATEWAY_URL = os.environ.get('AI_GATEWAY_URL') or \
        'https://ai.gateway.lovable.dev/v1/chat/completions'
    AI_MODEL = os.environ.get('AI_MODEL') or 'google/gemini-2.5-flash'
    AI_TIMEOUT_SECONDS = int(os.environ.get('AI_TIMEOUT_SECONDS') or 30)

    # --- Email Settings ---
    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'smtp.office365.com'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS') is not None
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    # Admin inbox for dispute alerts
    MAIL_DEFAULT_RECIPIENT = os.environ.get('MAIL_DEFAULT_RECIPIENT')

    # --- Tax info encryption ---
    TAX_ENCRYPTION_KEY = os.environ.get('TAX_ENCRYPTION_KEY')

    # Bearer token accepted by the scheduled job endpoints
    CRON_SECRET = os.environ.get('CRON_SECRET')

    # Used to build links in outgoing emails
    APP_ORIGIN = os.environ.get('APP_ORIGIN')

    CORS_ORIGINS = [
        origin.strip()
        for origin in (os.environ.get('CORS_ORIGINS') or 'http://localhost:5173,http://127.0.0.1:5173').split(',')
        if origin.strip()
    ]

    # Revenue split and flat delivery fee live in harvests/utils/pricing.py
    MAX_TIP_AMOUNT = 500

    # --- CREDITS & SUBSCRIPTION ---
    CREDIT_SPEND_THRESHOLD = 100.0
    CREDIT_AWARD_AMOUNT = 10.0
    CREDIT_EXPIRY_DAYS = 30
    SUBSCRIPTION_MONTHLY_PRICE = 9.99
    MAX_AWARD_AMOUNT = 1000
    DEFAULT_AWARD_EXPIRY_DAYS = 90

    # --- BATCHING DEFAULTS ---
    # Used when no active market config matches the collection point ZIPs.
    DEFAULT_TARGET_BATCH_SIZE = 37
    DEFAULT_MIN_BATCH_SIZE = 30
    DEFAULT_MAX_BATCH_SIZE = 45
    DEFAULT_MAX_ROUTE_HOURS = 7.5
    AI_PROMPT_ORDER_LIMIT = 100

    CANCELLATION_WINDOW_HOURS = 24
    DEFAULT_CUTOFF_TIME = '23:59'
    INVITATION_EXPIRY_DAYS = 7

    # --- RATE LIMITS ---
    RATE_LIMITS = {
        'checkout': {'max_requests': 10, 'window_seconds': 15 * 60},
        'process_payouts': {'max_requests': 5, 'window_seconds': 60 * 60},
        'award_credits': {'max_requests': 20, 'window_seconds': 60 * 60},
        'invite_admin': {'max_requests': 10, 'window_seconds': 60 * 60},
        'claim_route': {'max_requests': 20, 'window_seconds': 60 * 60},
        'store_tax_info': {'max_requests': 5, 'window_seconds': 60 * 60},
    }

    @classmethod
    def validate(cls):
        """
        Fails fast on missing critical secrets; optional integrations only warn.

        Raises:
            ValueError: If a required variable is not set
        """
        missing = [
            name for name in ('SUPABASE_URL', 'SUPABASE_SERVICE_ROLE_KEY', 'STRIPE_SECRET_KEY')
            if not getattr(cls, name)
        ]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        if not cls.AI_GATEWAY_API_KEY:
            logger.warning("LOVABLE_API_KEY not configured - batch optimization will use geographic fallback")
        if not cls.MAIL_USERNAME:
            logger.warning("MAIL_USERNAME not configured - notifications will be skipped")

    @staticmethod
    def validate_email_config(config):
        if not config.get('MAIL_USERNAME') or not config.get('MAIL_PASSWORD'):
            raise ValueError("MAIL_USERNAME and MAIL_PASSWORD must be set to send email")

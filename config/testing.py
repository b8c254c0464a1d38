"""
Testing configuration for the laundry backend
"""
import os
from config.settings import Config


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""

    TESTING = True
    DEBUG = False

    SECRET_KEY = 'test-secret-key'
    JWT_SECRET = 'test-jwt-secret'

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'TEST_DATABASE_URL',
        'sqlite:///:memory:'
    )

    # No Stripe key: the in-memory development gateway is used
    STRIPE_SECRET_KEY = ''
    STRIPE_WEBHOOK_SECRET = ''

    # No providers: notifications are logged instead of sent
    TWILIO_ACCOUNT_SID = ''
    TWILIO_AUTH_TOKEN = ''
    RESEND_API_KEY = ''
    SENDGRID_API_KEY = ''
    OPS_ALERT_EMAIL = 'ops@bagsoflaundry.test'

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    # Logging
    LOG_LEVEL = 'WARNING'
    SENTRY_DSN = ''

    CORS_ORIGINS = ['http://localhost:4321', 'http://localhost:3000']

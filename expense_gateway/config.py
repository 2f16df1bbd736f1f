"""
Concur Expense Gateway
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets
from datetime import timedelta

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw else None


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # Browser session (cookie carries only the session id)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    PERMANENT_SESSION_LIFETIME = timedelta(
        minutes=int(os.getenv("SESSION_LIFETIME_MINUTES", "30"))
    )

    # Token store backend: redis://... or memory://
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Destinations: "static" (DESTINATIONS / DESTINATIONS_FILE) or "service"
    DESTINATION_RESOLVER = os.getenv("DESTINATION_RESOLVER", "static")
    DESTINATIONS = os.getenv("DESTINATIONS", "")
    DESTINATIONS_FILE = os.getenv("DESTINATIONS_FILE")
    DESTINATION_SERVICE_URI = os.getenv("DESTINATION_SERVICE_URI")
    DESTINATION_SERVICE_TOKEN_URL = os.getenv("DESTINATION_SERVICE_TOKEN_URL")
    DESTINATION_SERVICE_CLIENT_ID = os.getenv("DESTINATION_SERVICE_CLIENT_ID")
    DESTINATION_SERVICE_CLIENT_SECRET = os.getenv("DESTINATION_SERVICE_CLIENT_SECRET")

    # Proxy for on-premise connectivity (set by the hosting platform)
    ON_PREMISE_PROXY_HOST = os.getenv("HC_OP_HTTP_PROXY_HOST")
    ON_PREMISE_PROXY_PORT = os.getenv("HC_OP_HTTP_PROXY_PORT")
    # Proxy for internet connectivity (set manually when running locally)
    INTERNET_PROXY_HOST = os.getenv("HTTP_PROXY_HOST")
    INTERNET_PROXY_PORT = os.getenv("HTTP_PROXY_PORT")

    # Consumer account id sent on the on-premise route
    TENANT_ACCOUNT_ID = os.getenv("HC_ACCOUNT")

    # Outbound HTTP
    HTTP_CONNECT_TIMEOUT = float(os.getenv("HTTP_CONNECT_TIMEOUT", "10"))
    HTTP_READ_TIMEOUT = float(os.getenv("HTTP_READ_TIMEOUT", "30"))
    MAX_EXPENSE_PAYLOAD_BYTES = _env_int("MAX_EXPENSE_PAYLOAD_BYTES")

    # Clear the session token when Concur answers 401
    INVALIDATE_TOKEN_ON_401 = _env_bool("INVALIDATE_TOKEN_ON_401", "true")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SECRET_KEY = "testing-secret"
    REDIS_URL = "memory://"
    DESTINATION_RESOLVER = "static"
    DESTINATIONS_FILE = None
    DESTINATIONS = {
        "concur-auth": {
            "URL": "https://concur.example.com/net2/oauth2/accesstoken.ashx",
            "User": "test-user",
            "Password": "test-password",
            "X-ConsumerKey": "test-consumer-key",
            "ProxyType": "Internet",
        },
        "concur-api": {
            "URL": "https://concur.example.com/api",
            "ProxyType": "Internet",
        },
    }
    ON_PREMISE_PROXY_HOST = "onprem-proxy.local"
    ON_PREMISE_PROXY_PORT = "20003"
    INTERNET_PROXY_HOST = None
    INTERNET_PROXY_PORT = None
    TENANT_ACCOUNT_ID = "test-account"
    MAX_EXPENSE_PAYLOAD_BYTES = None
    INVALIDATE_TOKEN_ON_401 = True


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}

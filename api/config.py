"""
Environment-aware configuration.
Every value is read from the environment (.env honoured via python-dotenv);
services.settings.AuthSettings validates the auth keys when the app is created.
"""
import os
from dotenv import load_dotenv

load_dotenv()  # Read .env if present


class BaseConfig:
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Access token (JWT, HS256). JWT_KEY is base64 and must decode to >= 32 bytes.
    JWT_KEY = os.getenv("JWT_KEY")
    JWT_ISSUER = os.getenv("JWT_ISSUER")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE")
    JWT_EXPIRES_SECONDS = int(os.getenv("JWT_EXPIRES_SECONDS", "900"))

    # Refresh token chains
    RT_EXPIRES_HOURS = float(os.getenv("RT_EXPIRES_HOURS", "720"))
    RT_SESSION_MAX_AGE_HOURS = float(os.getenv("RT_SESSION_MAX_AGE_HOURS", "0"))  # 0 = unbounded
    RT_REVOKE_CHAIN_ON_REUSE = os.getenv("RT_REVOKE_CHAIN_ON_REUSE", "false")

    # Lockout
    LOGIN_LOCKOUT_STARTS_AFTER = int(os.getenv("LOGIN_LOCKOUT_STARTS_AFTER", "5"))
    LOGIN_MAX_FAILED_ATTEMPTS = int(os.getenv("LOGIN_MAX_FAILED_ATTEMPTS", "10"))
    LOGIN_LOCK_DURATION_MINUTES = int(os.getenv("LOGIN_LOCK_DURATION_MINUTES", "15"))
    LOGIN_LOCK_ENABLED = os.getenv("LOGIN_LOCK_ENABLED", "true")
    LOGIN_REQUIRE_CONFIRMED_EMAIL = os.getenv("LOGIN_REQUIRE_CONFIRMED_EMAIL", "true")
    PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "100000"))

    # Browser cookie carrying the sealed refresh token. COOKIE_KEY is base64 of 32 bytes.
    COOKIE_NAME = os.getenv("COOKIE_NAME", "rt")
    COOKIE_MAX_AGE_HOURS = float(os.getenv("COOKIE_MAX_AGE_HOURS", "720"))
    COOKIE_KEY = os.getenv("COOKIE_KEY")
    COOKIE_PATH = os.getenv("COOKIE_PATH", "/api/v1/auth")
    COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN")

    # The single trusted browser origin, host[:port] only
    ORIGIN_HOST = os.getenv("ORIGIN_HOST")

    # Registration and password-reset emails; the links point at the front end
    EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@localhost")
    EMAIL_CONFIRM_URL = os.getenv("EMAIL_CONFIRM_URL", "http://localhost:3000/confirm-email")
    RESET_PASSWORD_URL = os.getenv("RESET_PASSWORD_URL", "http://localhost:3000/reset-password")
    EMAIL_CONFIRMATION_TOKEN_HOURS = float(os.getenv("EMAIL_CONFIRMATION_TOKEN_HOURS", "24"))
    RESET_PASSWORD_TOKEN_MINUTES = int(os.getenv("RESET_PASSWORD_TOKEN_MINUTES", "30"))
    EMAIL_MAX_PER_DAY = int(os.getenv("EMAIL_MAX_PER_DAY", "5"))
    EMAIL_RESEND_COOLDOWN_SECONDS = int(os.getenv("EMAIL_RESEND_COOLDOWN_SECONDS", "60"))

    # Dev server (python -m api)
    HOST = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    PORT = int(os.getenv("FLASK_RUN_PORT", "8000"))

    # Storage: "memory" or "sql"
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///auth.db")
    SEED_DEMO_USERS = os.getenv("SEED_DEMO_USERS", "false").lower() in ("1", "true", "yes")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class TestingConfig(BaseConfig):
    TESTING = True
    # fixed, non-secret keys so the test suite needs no environment
    JWT_KEY = "dGVzdC1zaWduaW5nLWtleS10ZXN0LXNpZ25pbmcta2V5IQ=="
    JWT_ISSUER = "https://auth.test"
    JWT_AUDIENCE = "https://api.test"
    COOKIE_KEY = "Y29va2llLWtleS1jb29raWUta2V5LWNvb2tpZS1rZXk="
    ORIGIN_HOST = "app.example.com"
    STORAGE_BACKEND = "memory"
    PASSWORD_HASH_ITERATIONS = 1000
    LOGIN_LOCKOUT_STARTS_AFTER = 3
    LOGIN_MAX_FAILED_ATTEMPTS = 5
    SEED_DEMO_USERS = False
    EMAIL_FROM = "no-reply@auth.test"
    EMAIL_CONFIRM_URL = "https://app.example.com/confirm-email"
    RESET_PASSWORD_URL = "https://app.example.com/reset-password"


class ProductionConfig(BaseConfig):
    DEBUG = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig

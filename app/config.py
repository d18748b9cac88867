"""
Settings for the Longa API, one class per deployment environment.

``create_app()`` looks the class up in ``config_by_name`` using
FLASK_ENV. Anything secret or site-specific is read from the
environment; the class attributes are only defaults.

Production talks to PostgreSQL through ``psycopg2``; the test suite
runs against in-memory SQLite.
"""

import logging
import os

_logger = logging.getLogger(__name__)

# Shipped placeholder; production refuses to start while it is in use.
_PLACEHOLDER_SECRET_KEY = "dev-secret-change-me"


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, "true" if default else "false").lower() == "true"


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_list(name: str, default: str = "") -> list[str]:
    """Comma-separated variable as a list, blanks dropped."""
    return [
        item.strip()
        for item in os.environ.get(name, default).split(",")
        if item.strip()
    ]


class BaseConfig:
    """Defaults every environment starts from."""

    SECRET_KEY: str = os.environ.get("SECRET_KEY", _PLACEHOLDER_SECRET_KEY)

    # Cookie session for the SPA. Secure is switched on in production.
    SESSION_COOKIE_HTTPONLY: bool = True
    SESSION_COOKIE_SAMESITE: str = "Lax"
    SESSION_COOKIE_SECURE: bool = False
    PERMANENT_SESSION_LIFETIME: int = _env_int("PERMANENT_SESSION_LIFETIME", 3600)

    # -- Database ----------------------------------------------------------
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL", "postgresql+psycopg2://localhost/longa_dev"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_ECHO: bool = False

    # Tokens are fetched once per SPA load, so they never expire.
    WTF_CSRF_TIME_LIMIT: int | None = None

    # -- Staff single sign-on (Entra ID through msal) ----------------------
    AZURE_CLIENT_ID: str = os.environ.get("AZURE_CLIENT_ID", "")
    AZURE_CLIENT_SECRET: str = os.environ.get("AZURE_CLIENT_SECRET", "")
    AZURE_TENANT_ID: str = os.environ.get("AZURE_TENANT_ID", "common")
    AZURE_AUTHORITY: str = os.environ.get(
        "AZURE_AUTHORITY", f"https://login.microsoftonline.com/{AZURE_TENANT_ID}"
    )
    AZURE_REDIRECT_URI: str = os.environ.get(
        "AZURE_REDIRECT_URI", "http://localhost:5000/auth/sso/callback"
    )
    AZURE_SCOPES: list[str] = ["User.Read"]

    # -- Email -------------------------------------------------------------
    SMTP_HOST: str = os.environ.get("SMTP_HOST", "")
    SMTP_PORT: int = _env_int("SMTP_PORT", 587)
    SMTP_USERNAME: str = os.environ.get("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.environ.get("SMTP_PASSWORD", "")
    SMTP_USE_SSL: bool = _env_bool("SMTP_USE_SSL", False)
    MAIL_FROM_ADDRESS: str = os.environ.get(
        "MAIL_FROM_ADDRESS", "no-reply@longaservices.com"
    )

    # -- SMS gateway -------------------------------------------------------
    SMS_GATEWAY_URL: str = os.environ.get("SMS_GATEWAY_URL", "")
    SMS_GATEWAY_API_KEY: str = os.environ.get("SMS_GATEWAY_API_KEY", "")
    SMS_SENDER_ID: str = os.environ.get("SMS_SENDER_ID", "LONGA")
    SMS_TIMEOUT_SECONDS: float = float(os.environ.get("SMS_TIMEOUT_SECONDS", "10"))

    # -- Letterhead for invoices and emails --------------------------------
    COMPANY_NAME: str = os.environ.get("COMPANY_NAME", "LONGA SERVICES")
    COMPANY_TAGLINE: str = "Professional Home Services"
    COMPANY_LOCATION: str = "Windhoek, Namibia"
    SUPPORT_EMAIL: str = os.environ.get("SUPPORT_EMAIL", "support@longaservices.com")

    # -- Booking rules -----------------------------------------------------
    # Pending bookings older than this are cancelled by `flask expire-bookings`.
    BOOKING_ACCEPTANCE_HOURS: int = _env_int("BOOKING_ACCEPTANCE_HOURS", 24)
    # Suburb pairs missing from the distance table count as this far apart.
    DEFAULT_DISTANCE_KM: int = _env_int("DEFAULT_DISTANCE_KM", 999)
    RECURRING_MONTHS_AHEAD: int = _env_int("RECURRING_MONTHS_AHEAD", 3)
    RECURRING_MAX_BOOKINGS: int = _env_int("RECURRING_MAX_BOOKINGS", 12)
    # ISO dates closed for business in addition to the statutory holidays.
    PUBLIC_HOLIDAYS: list[str] = _env_list("PUBLIC_HOLIDAYS")

    NOTIFICATION_BATCH_SIZE: int = _env_int("NOTIFICATION_BATCH_SIZE", 50)

    # /auth/dev-login signs in as any user id. Never on in production.
    DEV_LOGIN_ENABLED: bool = _env_bool("DEV_LOGIN_ENABLED", False)

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    @classmethod
    def validate_production_secrets(cls, app_config: dict) -> None:
        """
        Startup check run by ``create_app("production")``.

        Missing email delivery or a placeholder secret key stop the
        process; a missing SMS gateway or SSO setup only warns.

        Raises:
            RuntimeError: Listing every blocking problem found.
        """
        problems: list[str] = []

        if app_config.get("SECRET_KEY") == _PLACEHOLDER_SECRET_KEY:
            problems.append(
                "SECRET_KEY is the shipped placeholder; set a random value, "
                "e.g. the output of `python -c 'import secrets; print(secrets.token_hex(32))'`."
            )
        if not app_config.get("SMTP_HOST"):
            problems.append(
                "SMTP_HOST is empty, so booking and payout emails cannot be sent."
            )
        if problems:
            raise RuntimeError(
                "Refusing to start in production:\n  - " + "\n  - ".join(problems)
            )

        if not app_config.get("SMS_GATEWAY_URL"):
            _logger.warning(
                "SMS_GATEWAY_URL is empty; SMS notifications will be logged "
                "as failed deliveries."
            )
        if not app_config.get("AZURE_CLIENT_ID"):
            _logger.warning(
                "AZURE_CLIENT_ID is empty; staff SSO is off and admins sign "
                "in with a password."
            )
        if app_config.get("LOG_LEVEL", "").upper() == "DEBUG":
            _logger.warning("Production is logging at DEBUG.")


class DevelopmentConfig(BaseConfig):
    """Local work: SQL echo, debug logging, dev login on."""

    DEBUG: bool = True
    SQLALCHEMY_ECHO: bool = True
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "DEBUG")
    DEV_LOGIN_ENABLED: bool = _env_bool("DEV_LOGIN_ENABLED", True)


class TestingConfig(BaseConfig):
    """
    pytest: in-memory SQLite, no CSRF, and no outbound email, SMS or SSO.
    """

    TESTING: bool = True
    WTF_CSRF_ENABLED: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "TEST_DATABASE_URL", "sqlite:///:memory:"
    )
    SMTP_HOST: str = ""
    SMS_GATEWAY_URL: str = ""
    AZURE_CLIENT_ID: str = ""
    LOG_LEVEL: str = "DEBUG"
    DEV_LOGIN_ENABLED: bool = True


class ProductionConfig(BaseConfig):
    """Live deployment behind HTTPS. See ``validate_production_secrets``."""

    DEBUG: bool = False
    SQLALCHEMY_ECHO: bool = False
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "WARNING")
    SESSION_COOKIE_SECURE: bool = True
    DEV_LOGIN_ENABLED: bool = False


config_by_name: dict[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}

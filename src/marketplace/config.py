import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _bool_env(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    environment: str
    database_url: str
    store_backend: str
    app_url: str
    stripe_secret_key: str
    stripe_webhook_secret: str
    stripe_currency: str
    cron_secret: str
    jwt_secret: str
    session_cookie_name: str
    reservation_minutes: int
    checkout_session_minutes: int
    payout_hold_days: int
    dispute_window_days: int
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_use_tls: bool
    email_from: str
    log_level: str

    @property
    def is_payment_demo(self) -> bool:
        """No provider key configured: checkout skips the hosted payment page."""
        return not self.stripe_secret_key

    @property
    def is_email_demo(self) -> bool:
        return not self.smtp_host

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def get_settings() -> Settings:
    """Read settings from the environment.

    Values are read on every call so an app built after `monkeypatch.setenv`
    picks up the patched environment.
    """
    return Settings(
        environment=os.getenv("ENVIRONMENT", "production"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./database.db"),
        store_backend=os.getenv("STORE_BACKEND", "sql").lower(),
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        stripe_currency=os.getenv("STRIPE_CURRENCY", "usd"),
        cron_secret=os.getenv("CRON_SECRET", ""),
        jwt_secret=os.getenv("JWT_SECRET", "development-jwt-secret-change-me-32chars"),
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "session"),
        reservation_minutes=int(os.getenv("RESERVATION_MINUTES", "15")),
        checkout_session_minutes=int(os.getenv("CHECKOUT_SESSION_MINUTES", "30")),
        payout_hold_days=int(os.getenv("PAYOUT_HOLD_DAYS", "7")),
        dispute_window_days=int(os.getenv("DISPUTE_WINDOW_DAYS", "14")),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=int(os.getenv("SMTP_PORT", "1025")),
        smtp_username=os.getenv("SMTP_USERNAME", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_use_tls=_bool_env("SMTP_USE_TLS", False),
        email_from=os.getenv("EMAIL_FROM", "Covet <noreply@covet.com>"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

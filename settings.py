"""
Application settings.

Built once from the environment (and an optional .env file) at startup and
handed to every component that needs it.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

from errors import ConfigurationError

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    port: int = 8000
    log_level: str = "INFO"

    # Database
    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "a1_bedsheets"

    # Sessions
    session_secret: str = "dev-secret-change"
    session_max_age: int = 60 * 60 * 24  # 1 day
    password_reset_minutes: int = 60

    # Payment gateway
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    currency: str = "INR"

    # Outbound mail
    mail_api_key: str = ""
    email_from: str = "orders@a1bedsheets.local"
    store_name: str = "A1 Bedsheets"
    base_url: str = "http://localhost:8000"

    # Uploads
    upload_dir: str = str(BASE_DIR / "public" / "uploads")
    max_product_images: int = 5

    # Pricing
    free_shipping_threshold: float = 999
    shipping_fee: float = 50

    # Rate limiting
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60
    # Peers whose X-Forwarded-For header is believed; empty means none.
    trusted_proxies: Tuple[str, ...] = ()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from environment variables."""
        settings = cls(
            environment=os.getenv("ENV", os.getenv("NODE_ENV", "development")),
            port=_env_int("PORT", 8000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            mongodb_uri=os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL") or cls.mongodb_uri,
            database_name=os.getenv("DATABASE_NAME", cls.database_name),
            session_secret=os.getenv("SESSION_SECRET", cls.session_secret),
            session_max_age=_env_int("SESSION_MAX_AGE", cls.session_max_age),
            password_reset_minutes=_env_int("PASSWORD_RESET_MINUTES", cls.password_reset_minutes),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            razorpay_api_url=os.getenv("RAZORPAY_API_URL", cls.razorpay_api_url),
            currency=os.getenv("CURRENCY", cls.currency),
            mail_api_key=os.getenv("RESEND_API_KEY", ""),
            email_from=os.getenv("EMAIL_FROM", cls.email_from),
            store_name=os.getenv("STORE_NAME", cls.store_name),
            base_url=os.getenv("BASE_URL", cls.base_url).rstrip("/"),
            upload_dir=os.getenv("UPLOAD_DIR", cls.upload_dir),
            free_shipping_threshold=_env_float("FREE_SHIPPING_THRESHOLD", cls.free_shipping_threshold),
            shipping_fee=_env_float("SHIPPING_FEE", cls.shipping_fee),
            rate_limit_max=_env_int("RATE_LIMIT_MAX", cls.rate_limit_max),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", cls.rate_limit_window_seconds),
            trusted_proxies=tuple(p.strip() for p in os.getenv("TRUSTED_PROXIES", "").split(",") if p.strip()),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Fail fast on settings the app cannot run with."""
        for name in ("free_shipping_threshold", "shipping_fee", "rate_limit_max",
                     "rate_limit_window_seconds", "session_max_age"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

        if not self.is_production:
            return

        missing = []
        if not self.mongodb_uri or self.mongodb_uri == Settings.mongodb_uri:
            missing.append("MONGODB_URI")
        if not self.session_secret or self.session_secret == Settings.session_secret:
            missing.append("SESSION_SECRET")
        if not self.razorpay_key_id:
            missing.append("RAZORPAY_KEY_ID")
        if not self.razorpay_key_secret:
            missing.append("RAZORPAY_KEY_SECRET")
        if missing:
            raise ConfigurationError("Missing required configuration: " + ", ".join(missing))

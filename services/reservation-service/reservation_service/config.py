import os

from pydantic import BaseModel

SERVICE_NAME = "reservation-service"

DEFAULT_PENDING_TTL_SECONDS = 900
DEFAULT_REAPER_INTERVAL_SECONDS = 60


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """
    Explicit configuration handed to every component at construction time.
    Nothing below the HTTP layer reads the process environment.
    """

    database_url: str = "sqlite+aiosqlite:///./reservations.db"
    auto_create_schema: bool = False

    pending_ttl_seconds: int = DEFAULT_PENDING_TTL_SECONDS
    reaper_interval_seconds: float = DEFAULT_REAPER_INTERVAL_SECONDS

    gateway_key_id: str | None = None
    gateway_key_secret: str | None = None
    gateway_base_url: str = "https://api.razorpay.com/v1"
    currency: str = "INR"
    allow_synthetic_orders: bool = False

    turf_service_url: str = "http://turf-service:8000"

    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"

    rabbit_url: str | None = None
    redis_url: str | None = None

    resend_api_key: str | None = None
    email_from: str = "Turf Marketplace <bookings@turf-marketplace.example>"

    analytics_log_path: str = "logs/analytics.log"
    alerts_log_path: str = "logs/alerts.log"

    log_level: str = "INFO"

    @property
    def gateway_configured(self) -> bool:
        return bool(self.gateway_key_id and self.gateway_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.getenv
        defaults = cls()
        return cls(
            database_url=env("DATABASE_URL") or defaults.database_url,
            auto_create_schema=_flag(env("AUTO_CREATE_SCHEMA")),
            pending_ttl_seconds=int(env("PENDING_RESERVATION_TTL_SECONDS") or DEFAULT_PENDING_TTL_SECONDS),
            reaper_interval_seconds=float(env("REAPER_INTERVAL_SECONDS") or DEFAULT_REAPER_INTERVAL_SECONDS),
            gateway_key_id=env("RAZORPAY_KEY_ID") or None,
            gateway_key_secret=env("RAZORPAY_KEY_SECRET") or None,
            gateway_base_url=env("RAZORPAY_BASE_URL") or defaults.gateway_base_url,
            currency=env("PAYMENT_CURRENCY") or defaults.currency,
            allow_synthetic_orders=_flag(env("ALLOW_SYNTHETIC_ORDERS")),
            turf_service_url=env("TURF_SERVICE_URL") or defaults.turf_service_url,
            jwt_secret=env("JWT_SECRET") or None,
            jwt_algorithm=env("JWT_ALGORITHM") or defaults.jwt_algorithm,
            rabbit_url=env("RABBIT_URL") or None,
            redis_url=env("REDIS_URL") or None,
            resend_api_key=env("RESEND_API_KEY") or None,
            email_from=env("EMAIL_FROM") or defaults.email_from,
            analytics_log_path=env("ANALYTICS_LOG_PATH") or defaults.analytics_log_path,
            alerts_log_path=env("ALERTS_LOG_PATH") or defaults.alerts_log_path,
            log_level=env("LOG_LEVEL") or defaults.log_level,
        )


def mask_secret(value: str | None, visible: int = 4) -> str:
    if not value:
        return "<unset>"
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)

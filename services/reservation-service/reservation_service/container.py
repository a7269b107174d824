from dataclasses import dataclass, field

from turf_shared.database import get_engine, get_session
from turf_shared.rabbitmq import RabbitPublisher
from turf_shared.redis_client import make_redis

from .admin import AdminOverride
from .alerts import AlertSink
from .analytics import JsonlAnalyticsSink
from .audit import AuditSink
from .breaker import CircuitBreaker
from .clients import HttpTurfCatalog, RazorpayGateway
from .config import Settings
from .event_consumer import NotificationConsumer
from .expiry_worker import ExpiryReaper
from .models import utcnow
from .notifications import ResendEmailSender
from .payments import PaymentConfirmationHandler
from .reservations import ReservationStore


@dataclass
class Services:
    settings: Settings
    store: ReservationStore
    payments: PaymentConfirmationHandler
    admin: AdminOverride
    reaper: ExpiryReaper
    publisher: object
    consumer: NotificationConsumer | None = None
    engine: object = None
    redis: object = None
    breakers: list = field(default_factory=list)


def build_services(
    settings: Settings,
    session_factory,
    catalog,
    publisher,
    gateway=None,
    alerts=None,
    consumer=None,
    clock=utcnow,
) -> Services:
    store = ReservationStore(session_factory, catalog, publisher, settings, clock=clock)
    audit = AuditSink(session_factory, clock=clock)
    return Services(
        settings=settings,
        store=store,
        payments=PaymentConfirmationHandler(
            store,
            gateway,
            publisher,
            alerts or AlertSink(settings.alerts_log_path),
            settings,
            clock=clock,
        ),
        admin=AdminOverride(store, audit, publisher),
        reaper=ExpiryReaper(store, publisher, settings.reaper_interval_seconds),
        publisher=publisher,
        consumer=consumer,
    )


def build_from_settings(settings: Settings) -> Services:
    engine = get_engine(settings.database_url)
    session_factory = get_session(engine)
    redis_client = make_redis(settings.redis_url)
    publisher = RabbitPublisher(settings.rabbit_url)

    breakers = []

    def breaker(name: str):
        if redis_client is None:
            return None
        cb = CircuitBreaker(redis_client, name, failure_threshold=5, reset_timeout_seconds=10)
        breakers.append(cb)
        return cb

    catalog = HttpTurfCatalog(settings.turf_service_url, breaker("turf-service"))

    gateway = None
    if settings.gateway_configured:
        gateway = RazorpayGateway(
            settings.gateway_key_id,
            settings.gateway_key_secret,
            settings.gateway_base_url,
            breaker("payment-gateway"),
        )

    consumer = NotificationConsumer(
        redis_client,
        ResendEmailSender(settings.resend_api_key, settings.email_from),
        JsonlAnalyticsSink(settings.analytics_log_path),
    )

    services = build_services(settings, session_factory, catalog, publisher, gateway=gateway, consumer=consumer)
    services.engine = engine
    services.redis = redis_client
    services.breakers = breakers
    return services

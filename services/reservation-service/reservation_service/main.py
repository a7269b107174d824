import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from turf_shared.database import init_models
from turf_shared.logging_setup import configure_logging

from .config import SERVICE_NAME, Settings, mask_secret
from .container import build_from_settings
from .errors import ReservationError
from .middleware import RequestLoggingMiddleware
from .routes import router

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Reservations", "description": "Slot reservations and their lifecycle."},
    {"name": "Payments", "description": "Gateway orders and payment verification."},
    {"name": "Admin", "description": "Privileged release, cleanup and audit."},
]

app = FastAPI(title="Reservation Service", openapi_tags=OPENAPI_TAGS)
app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)

_stop_event = asyncio.Event()
_expiry_task = None
_consumer_task = None


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", tags=["System"])
async def health(request: Request):
    services = getattr(request.app.state, "services", None)
    upstreams = []
    for cb in getattr(services, "breakers", None) or []:
        try:
            upstreams.append(await cb.status())
        except Exception as e:
            logger.warning("breaker status for %s unavailable: %s", cb.name, e)
            upstreams.append({"name": cb.name, "state": "UNKNOWN"})
    degraded = any(u["state"] != "CLOSED" for u in upstreams)
    return {
        "status": "degraded" if degraded else "ok",
        "service": SERVICE_NAME,
        "events_enabled": bool(services and services.publisher.enabled),
        "upstreams": upstreams,
    }


@app.on_event("startup")
async def startup():
    global _expiry_task, _consumer_task
    settings = Settings.from_env()
    configure_logging(SERVICE_NAME, settings.log_level)
    logger.info(
        "starting",
        extra={
            "pending_ttl_seconds": settings.pending_ttl_seconds,
            "gateway_key_id": mask_secret(settings.gateway_key_id),
            "synthetic_orders": settings.allow_synthetic_orders,
        },
    )

    services = build_from_settings(settings)
    app.state.services = services

    if settings.auto_create_schema:
        await init_models(services.engine)

    # never crash the service if RabbitMQ is temporarily unavailable
    try:
        await services.publisher.connect()
    except Exception as e:
        logger.warning("RabbitMQ connect failed at startup; continuing without events: %s", e)

    if settings.rabbit_url and services.consumer is not None:
        _consumer_task = asyncio.create_task(
            services.consumer.start_with_retry(settings.rabbit_url, _stop_event)
        )

    _expiry_task = asyncio.create_task(services.reaper.expiry_loop(_stop_event))


@app.on_event("shutdown")
async def shutdown():
    global _expiry_task, _consumer_task
    _stop_event.set()
    if _expiry_task:
        await _expiry_task
    services = getattr(app.state, "services", None)
    if _consumer_task:
        try:
            conn = await _consumer_task
            if conn and not conn.is_closed:
                await conn.close()
        except Exception as e:
            logger.warning("consumer close failed: %s", e)
    if services is None:
        return
    try:
        await services.publisher.close()
    except Exception as e:
        logger.warning("publisher close failed: %s", e)
    if services.redis is not None:
        await services.redis.aclose()
    if services.engine is not None:
        await services.engine.dispose()

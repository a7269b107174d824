import asyncio
import json
import logging

import aio_pika
from aio_pika import ExchangeType

from turf_shared.idempotency import claim_event
from turf_shared.rabbitmq import EXCHANGE_NAME

from .receipts import render_receipt

QUEUE_NAME = "reservation_service_notifications"
ROUTING_KEYS = [
    "reservation.created",
    "reservation.paid",
    "reservation.released",
    "reservation.expired",
]
RETRY_SECONDS = 5

logger = logging.getLogger(__name__)


def _slots_text(slots) -> str:
    return ", ".join(f"{s['start_time']}-{s['end_time']}" for s in slots or [])


class NotificationConsumer:
    """
    Post-commit side effects of the reservation lifecycle. Every step is
    best-effort: failures are logged and never reach the committed reservation.
    """

    def __init__(self, redis_client, sender, analytics):
        self.redis = redis_client
        self.sender = sender
        self.analytics = analytics

    async def handle_payload(self, payload: dict):
        event_id = payload.get("event_id")
        event_type = payload.get("event_type")
        data = payload.get("data") or {}

        if not event_id or event_type not in ROUTING_KEYS:
            return

        if self.redis is not None and not await claim_event(self.redis, event_id):
            logger.debug("duplicate event %s ignored", event_id)
            return

        try:
            if event_type == "reservation.created":
                await self._booking_created(data)
            elif event_type == "reservation.paid":
                await self._payment_succeeded(data)
            elif event_type == "reservation.released":
                await self.analytics.record(
                    "reservation_released",
                    {"reservation_id": data.get("id"), "reason": data.get("reason")},
                )
            elif event_type == "reservation.expired":
                await self.analytics.record("reservation_expired", {"reservation_id": data.get("reservation_id")})
        except Exception:
            # the message is acked either way, so the claim stays and the event is not retried
            logger.exception("handling %s failed for event %s", event_type, event_id)

    async def _notify(self, data: dict, subject: str, text: str, attachments=None):
        recipient = data.get("holder_email")
        if not recipient:
            logger.warning(
                "no recipient for notification; skipping",
                extra={"reservation_id": data.get("id"), "subject": subject},
            )
            return
        try:
            await self.sender.send(recipient, subject, text, attachments=attachments)
        except Exception:
            logger.exception("email to holder of %s failed", data.get("id"))

    async def _booking_created(self, data: dict):
        name = data.get("holder_name") or "there"
        turf = data.get("turf_name") or data.get("turf_ref")
        text = (
            f"Hi {name}, your booking at {turf} is created for {data.get('date')} "
            f"{_slots_text(data.get('slots'))}. Complete payment to confirm."
        )
        await self._notify(data, "Booking Created", text)

    async def _payment_succeeded(self, data: dict):
        name = data.get("holder_name") or "there"
        turf = data.get("turf_name") or data.get("turf_ref")
        text = (
            f"Hi {name}, your payment of {data.get('price')} for turf {turf} was successful. "
            f"Your booking is confirmed for {data.get('date')} {_slots_text(data.get('slots'))}."
        )

        attachments = None
        try:
            attachments = [render_receipt(data)]
        except Exception:
            logger.exception("receipt generation failed for %s", data.get("id"))

        await self._notify(data, "Payment Successful", text, attachments=attachments)

        payment = data.get("payment") or {}
        await self.analytics.record(
            "payment_success",
            {
                "reservation_id": data.get("id"),
                "turf_ref": data.get("turf_ref"),
                "amount": payment.get("amount"),
                "transaction_id": payment.get("transaction_id"),
            },
        )

    async def handle_message(self, message: aio_pika.IncomingMessage):
        async with message.process(requeue=False):
            try:
                payload = json.loads(message.body.decode("utf-8"))
            except Exception:
                logger.warning("undecodable message dropped")
                return
            await self.handle_payload(payload)

    async def _connect_and_consume(self, rabbit_url: str):
        conn = await aio_pika.connect_robust(rabbit_url)
        channel = await conn.channel()
        await channel.set_qos(prefetch_count=50)

        exchange = await channel.declare_exchange(EXCHANGE_NAME, ExchangeType.TOPIC, durable=True)
        queue = await channel.declare_queue(QUEUE_NAME, durable=True)

        for rk in ROUTING_KEYS:
            await queue.bind(exchange, routing_key=rk)

        await queue.consume(self.handle_message)
        logger.info("notification consumer started")
        return conn

    async def start_with_retry(self, rabbit_url: str, stop_event: asyncio.Event):
        while not stop_event.is_set():
            try:
                return await self._connect_and_consume(rabbit_url)
            except Exception as e:
                logger.warning("consumer connect failed, retrying in %ss: %s", RETRY_SECONDS, e)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
                except asyncio.TimeoutError:
                    continue
        return None

import hashlib
import hmac
import logging
import uuid

from turf_shared.events import build_event, to_json

from .capabilities import PAY, Actor, require
from .clients import GatewayOrder
from .config import mask_secret
from .errors import InvalidState, PaymentVerificationFailed, UpstreamUnavailable
from .models import PAID, PENDING, Reservation, utcnow

logger = logging.getLogger(__name__)

PAYMENT_METHOD = "razorpay"


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    body = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def signature_matches(secret: str | None, order_id: str, payment_id: str, signature: str) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def to_minor_units(price: float) -> int:
    return int(round(price * 100))


class PaymentConfirmationHandler:
    """
    Gateway order creation and the signature-checked pending -> paid step.

    Side effects (confirmation email, receipt, analytics) are not performed
    here: a single ``reservation.paid`` event is published after the commit and
    the notification consumer does the rest.
    """

    def __init__(self, store, gateway, publisher, alerts, settings, clock=utcnow):
        self.store = store
        self.gateway = gateway
        self.publisher = publisher
        self.alerts = alerts
        self.settings = settings
        self.clock = clock
        if not settings.gateway_key_secret:
            logger.warning("payment gateway secret not configured; verification will always fail")
        else:
            logger.info("payment gateway configured", extra={"key_secret": mask_secret(settings.gateway_key_secret)})

    async def create_order(self, reservation_id: str, actor: Actor) -> GatewayOrder:
        reservation = await self.store.load(reservation_id)
        require(actor, reservation, PAY)

        if reservation.status != PENDING:
            raise InvalidState(reservation_id, reservation.status, PAID)
        if reservation.is_expired(self.clock(), self.settings.pending_ttl_seconds):
            raise InvalidState(reservation_id, "expired", PAID)

        amount = to_minor_units(reservation.price)
        if self.gateway is not None:
            order = await self.gateway.create_order(amount, self.settings.currency, reservation.id)
        elif self.settings.allow_synthetic_orders:
            order = GatewayOrder(
                id=f"order_synthetic_{uuid.uuid4().hex[:14]}",
                amount=amount,
                currency=self.settings.currency,
                receipt=reservation.id,
                synthetic=True,
            )
            self.alerts.synthetic_order({"reservation_id": reservation.id, "order_id": order.id, "amount": amount})
        else:
            raise UpstreamUnavailable("Payment gateway is not configured")

        await self.store.attach_order(reservation.id, order.id)
        return order

    async def verify(
        self,
        reservation_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        actor: Actor,
    ) -> Reservation:
        if not signature_matches(self.settings.gateway_key_secret, gateway_order_id, gateway_payment_id, signature):
            logger.warning("payment signature mismatch", extra={"reservation_id": reservation_id})
            raise PaymentVerificationFailed(reservation_id)

        reservation = await self.store.load(reservation_id)
        require(actor, reservation, PAY)

        payment = {
            "amount": reservation.price,
            "method": PAYMENT_METHOD,
            "transaction_id": gateway_payment_id,
            "provider_order_id": gateway_order_id,
            "provider_payment_id": gateway_payment_id,
            "signature": signature,
            "status": "completed",
            "date": self.clock().isoformat(),
        }
        paid = await self.store.mark_paid(reservation_id, gateway_order_id, gateway_payment_id, payment)
        logger.info("payment verified", extra={"reservation_id": paid.id, "amount": paid.price})

        try:
            event = build_event("reservation.paid", paid.snapshot())
            await self.publisher.publish("reservation.paid", to_json(event))
        except Exception:
            logger.exception("failed to publish reservation.paid for %s", paid.id)
        return paid

import json

import httpx
import pytest

from reservation_service.clients import RazorpayGateway
from reservation_service.container import build_services
from reservation_service.errors import (
    InvalidState,
    NotAuthorized,
    NotFound,
    PaymentVerificationFailed,
    SyntheticOrderWarning,
    UpstreamUnavailable,
)
from reservation_service.models import PAID, PENDING
from reservation_service.payments import compute_signature, signature_matches, to_minor_units

from conftest import DATE, GATEWAY_SECRET, SLOT, SLOT_2, TURF, pay, sign


def _flip_one_bit(signature: str) -> str:
    first = int(signature[0], 16) ^ 1
    return format(first, "x") + signature[1:]


def test_signature_is_hmac_sha256_over_order_and_payment():
    sig = compute_signature(GATEWAY_SECRET, "order_1", "pay_1")
    assert len(sig) == 64
    assert signature_matches(GATEWAY_SECRET, "order_1", "pay_1", sig)
    assert not signature_matches(GATEWAY_SECRET, "order_1", "pay_2", sig)
    assert not signature_matches(None, "order_1", "pay_1", sig)
    assert not signature_matches(GATEWAY_SECRET, "order_1", "pay_1", "")


def test_minor_units_rounding():
    assert to_minor_units(500) == 50000
    assert to_minor_units(19.99) == 1999


@pytest.mark.asyncio
async def test_verify_marks_paid_and_publishes_once(services, user, publisher):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    order = await services.payments.create_order(reservation.id, user)

    paid = await services.payments.verify(reservation.id, order.id, "pay_1", sign(order.id, "pay_1"), user)

    assert paid.status == PAID
    assert paid.gateway_payment_id == "pay_1"
    assert paid.payment["status"] == "completed"
    assert paid.payment["amount"] == 500
    assert paid.payment["transaction_id"] == "pay_1"
    assert paid.payment["provider_order_id"] == order.id
    events = publisher.of("reservation.paid")
    assert len(events) == 1
    assert events[0]["data"]["status"] == PAID


@pytest.mark.asyncio
async def test_second_verify_is_rejected_without_side_effects(services, user, publisher):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    order = await services.payments.create_order(reservation.id, user)
    await services.payments.verify(reservation.id, order.id, "pay_1", sign(order.id, "pay_1"), user)

    with pytest.raises(InvalidState):
        await services.payments.verify(reservation.id, order.id, "pay_2", sign(order.id, "pay_2"), user)

    stored = await services.store.load(reservation.id)
    assert stored.payment["transaction_id"] == "pay_1"
    assert len(publisher.of("reservation.paid")) == 1


@pytest.mark.asyncio
async def test_tampered_signature_leaves_reservation_pending(services, user, publisher):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    order = await services.payments.create_order(reservation.id, user)
    bad = _flip_one_bit(sign(order.id, "pay_1"))

    with pytest.raises(PaymentVerificationFailed):
        await services.payments.verify(reservation.id, order.id, "pay_1", bad, user)

    stored = await services.store.load(reservation.id)
    assert stored.status == PENDING
    assert stored.payment is None
    assert publisher.of("reservation.paid") == []


@pytest.mark.asyncio
async def test_settled_payment_cannot_confirm_another_reservation(services, user, other_user, publisher):
    mine, _ = await services.store.create(user, TURF, DATE, [SLOT])
    theirs, _ = await services.store.create(other_user, TURF, DATE, [SLOT_2])
    paid = await pay(services, user, mine.id, "pay_1")
    order_id = paid.gateway_order_id
    settled = sign(order_id, "pay_1")

    # same signed triple, another reservation without an order
    with pytest.raises(PaymentVerificationFailed):
        await services.payments.verify(theirs.id, order_id, "pay_1", settled, other_user)

    # same payment id signed against the other reservation's own order
    their_order = await services.payments.create_order(theirs.id, other_user)
    with pytest.raises(PaymentVerificationFailed):
        await services.payments.verify(theirs.id, their_order.id, "pay_1", sign(their_order.id, "pay_1"), other_user)

    stored = await services.store.load(theirs.id)
    assert stored.status == PENDING
    assert stored.payment is None
    assert len(publisher.of("reservation.paid")) == 1


@pytest.mark.asyncio
async def test_verify_requires_an_attached_order(services, user):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])

    with pytest.raises(PaymentVerificationFailed):
        await services.payments.verify(reservation.id, "order_x", "pay_1", sign("order_x", "pay_1"), user)

    assert (await services.store.load(reservation.id)).status == PENDING


@pytest.mark.asyncio
async def test_only_holder_or_admin_may_verify(services, user, other_user, admin):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    order = await services.payments.create_order(reservation.id, user)
    sig = sign(order.id, "pay_1")

    with pytest.raises(NotAuthorized):
        await services.payments.verify(reservation.id, order.id, "pay_1", sig, other_user)
    assert (await services.store.load(reservation.id)).status == PENDING

    paid = await services.payments.verify(reservation.id, order.id, "pay_1", sig, admin)
    assert paid.status == PAID


@pytest.mark.asyncio
async def test_verify_fails_closed_without_secret(settings, session_factory, catalog, publisher, gateway, clock, user):
    no_secret = settings.model_copy(update={"gateway_key_secret": None})
    services = build_services(no_secret, session_factory, catalog, publisher, gateway=gateway, clock=clock)
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    order = await services.payments.create_order(reservation.id, user)

    with pytest.raises(PaymentVerificationFailed):
        await services.payments.verify(reservation.id, order.id, "pay_1", sign(order.id, "pay_1"), user)


@pytest.mark.asyncio
async def test_verify_unknown_reservation(services, user):
    with pytest.raises(NotFound):
        await services.payments.verify("nope", "order_1", "pay_1", sign("order_1", "pay_1"), user)


@pytest.mark.asyncio
async def test_verify_after_release_or_expiry_is_invalid_state(services, user, admin, clock):
    released, _ = await services.store.create(user, TURF, DATE, [SLOT])
    released_order = await services.payments.create_order(released.id, user)
    await services.admin.release(released.id, admin)
    with pytest.raises(InvalidState):
        await services.payments.verify(
            released.id, released_order.id, "pay_1", sign(released_order.id, "pay_1"), user
        )

    stale, _ = await services.store.create(user, TURF, "2025-10-21", [SLOT])
    stale_order = await services.payments.create_order(stale.id, user)
    clock.advance(900)
    with pytest.raises(InvalidState) as exc:
        await services.payments.verify(stale.id, stale_order.id, "pay_2", sign(stale_order.id, "pay_2"), user)
    assert exc.value.current == "expired"


@pytest.mark.asyncio
async def test_payment_just_before_expiry_survives_the_reaper(services, user, superadmin, clock):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    order = await services.payments.create_order(reservation.id, user)
    clock.advance(899)
    await services.payments.verify(reservation.id, order.id, "pay_1", sign(order.id, "pay_1"), user)

    clock.advance(2)
    assert await services.reaper.cleanup_now(superadmin) == []
    assert (await services.store.load(reservation.id)).status == PAID


@pytest.mark.asyncio
async def test_synthetic_order_is_flagged_and_bound(settings, session_factory, catalog, publisher, clock, user):
    synthetic = settings.model_copy(update={"allow_synthetic_orders": True})
    services = build_services(synthetic, session_factory, catalog, publisher, clock=clock)
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])

    with pytest.warns(SyntheticOrderWarning):
        order = await services.payments.create_order(reservation.id, user)

    assert order.synthetic is True
    assert order.id.startswith("order_synthetic_")
    assert order.amount == 50000
    assert order.currency == "INR"
    assert (await services.store.load(reservation.id)).gateway_order_id == order.id

    with open(settings.alerts_log_path, encoding="utf-8") as fh:
        alert = json.loads(fh.readline())
    assert alert["type"] == "synthetic_order_returned"
    assert alert["info"]["order_id"] == order.id

    with pytest.raises(PaymentVerificationFailed):
        await services.payments.verify(reservation.id, "order_other", "pay_1", sign("order_other", "pay_1"), user)
    paid = await services.payments.verify(reservation.id, order.id, "pay_1", sign(order.id, "pay_1"), user)
    assert paid.status == PAID


@pytest.mark.asyncio
async def test_create_order_without_gateway_is_unavailable(settings, session_factory, catalog, publisher, clock, user):
    services = build_services(settings, session_factory, catalog, publisher, clock=clock)
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])
    with pytest.raises(UpstreamUnavailable):
        await services.payments.create_order(reservation.id, user)


@pytest.mark.asyncio
async def test_create_order_through_gateway(settings, session_factory, catalog, publisher, clock, user):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_real_1", "amount": 50000, "currency": "INR", "receipt": "r"})

    gateway = RazorpayGateway("key_id", GATEWAY_SECRET, "https://gateway.test/v1", transport=httpx.MockTransport(handler))
    services = build_services(settings, session_factory, catalog, publisher, gateway=gateway, clock=clock)
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])

    order = await services.payments.create_order(reservation.id, user)

    assert order.id == "order_real_1"
    assert order.synthetic is False
    assert seen["url"] == "https://gateway.test/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"] == {"amount": 50000, "currency": "INR", "receipt": reservation.id}


@pytest.mark.asyncio
async def test_create_order_guards(services, clock, user, other_user):
    reservation, _ = await services.store.create(user, TURF, DATE, [SLOT])

    with pytest.raises(NotAuthorized):
        await services.payments.create_order(reservation.id, other_user)

    clock.advance(900)
    with pytest.raises(InvalidState):
        await services.payments.create_order(reservation.id, user)

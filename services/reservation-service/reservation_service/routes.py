from typing import List

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from .capabilities import Actor
from .container import Services
from .errors import InvalidState
from .models import PAID
from .receipts import render_receipt
from .schemas import (
    AdminReservationResponse,
    AuditEntryResponse,
    CleanupResponse,
    CreateOrderRequest,
    CreateReservationRequest,
    CreateReservationResponse,
    OrderResponse,
    ReleaseRequest,
    ReleaseResponse,
    ReservationResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from .security import get_current_actor, get_optional_actor

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


# ================= RESERVATIONS =================

@router.post("/reservations", response_model=CreateReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    data: CreateReservationRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    reservation, expires_at = await services.store.create(actor, data.turf_id, data.date, data.slots)
    return CreateReservationResponse(
        message="Reservation created",
        reservation=ReservationResponse.model_validate(reservation),
        expires_at=expires_at,
    )


@router.get("/reservations/mine", response_model=List[ReservationResponse], tags=["Reservations"])
async def my_reservations(
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    return await services.store.list_for_holder(actor)


@router.get("/reservations/turf/{turf_ref}", tags=["Reservations"])
async def reservations_for_turf(
    turf_ref: str,
    date: str | None = None,
    actor: Actor | None = Depends(get_optional_actor),
    services: Services = Depends(get_services),
):
    return await services.store.list_for_turf(turf_ref, date, actor)


@router.get("/reservations/all", response_model=List[AdminReservationResponse], tags=["Admin"])
async def all_reservations(
    turf_ref: str | None = None,
    limit: int = 500,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    return await services.store.list_all(actor, turf_ref, limit=min(max(limit, 1), 500))


@router.post("/reservations/cleanup-pending", response_model=CleanupResponse, tags=["Admin"])
async def cleanup_pending(
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    deleted = await services.reaper.cleanup_now(actor)
    return CleanupResponse(message="Cleanup done", deleted_count=len(deleted), deleted_ids=deleted)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    return await services.store.get(reservation_id, actor)


@router.get("/reservations/{reservation_id}/receipt", tags=["Reservations"])
async def reservation_receipt(
    reservation_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    reservation = await services.store.get(reservation_id, actor)
    if reservation.status != PAID:
        raise InvalidState(reservation_id, reservation.status, "receipt")
    receipt = render_receipt(reservation.snapshot())
    return Response(
        content=receipt.content,
        media_type=receipt.content_type,
        headers={"Content-Disposition": f'inline; filename="{receipt.filename}"'},
    )


@router.post("/reservations/{reservation_id}/release", response_model=ReleaseResponse, tags=["Admin"])
async def release_reservation(
    reservation_id: str,
    data: ReleaseRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    reason = data.reason if data else None
    reservation = await services.admin.release(reservation_id, actor, reason)
    return ReleaseResponse(
        message="Pending reservation released",
        reservation=ReservationResponse.model_validate(reservation),
    )


@router.get("/audit-entries", response_model=List[AuditEntryResponse], tags=["Admin"])
async def audit_entries(
    limit: int = 200,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    return await services.admin.audit_entries(actor, limit=min(max(limit, 1), 500))


# ================= PAYMENTS =================

@router.post("/payments/orders", response_model=OrderResponse, tags=["Payments"])
async def create_order(
    data: CreateOrderRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    order = await services.payments.create_order(data.reservation_id, actor)
    return OrderResponse(**order.to_dict())


@router.post("/payments/verify", response_model=VerifyPaymentResponse, tags=["Payments"])
async def verify_payment(
    data: VerifyPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    reservation = await services.payments.verify(
        data.reservation_id,
        data.gateway_order_id,
        data.gateway_payment_id,
        data.signature,
        actor,
    )
    return VerifyPaymentResponse(
        message="Payment verified & reservation confirmed",
        reservation=ReservationResponse.model_validate(reservation),
    )

from datetime import datetime
from typing import Any, List, Optional

from dateutil import parser
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Slot(BaseModel):
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_order(self):
        try:
            start = parser.parse(self.start_time).time()
            end = parser.parse(self.end_time).time()
        except (ValueError, OverflowError):
            raise ValueError("start_time and end_time must be clock times like 10:00")
        if start >= end:
            raise ValueError("start_time must be before end_time")
        return self


class CreateReservationRequest(BaseModel):
    turf_id: str = Field(alias="turfId")
    date: str
    slots: List[Slot] = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("date")
    @classmethod
    def date_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("date is required")
        return v

    @field_validator("slots")
    @classmethod
    def slots_unique(cls, v: List[Slot]) -> List[Slot]:
        seen = set()
        for s in v:
            key = (s.start_time, s.end_time)
            if key in seen:
                raise ValueError(f"duplicate slot {s.start_time}-{s.end_time}")
            seen.add(key)
        return v


class SlotOut(BaseModel):
    start_time: str
    end_time: str


class PaymentOut(BaseModel):
    amount: float
    method: str
    transaction_id: str
    provider_order_id: str
    provider_payment_id: str
    signature: str
    status: str
    date: str


class ReservationResponse(BaseModel):
    id: str
    holder_id: str
    turf_ref: str
    turf_name: Optional[str] = None
    date: str
    slots: List[SlotOut]
    price: float
    status: str
    payment: Optional[PaymentOut] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminReservationResponse(ReservationResponse):
    holder_email: Optional[str] = None
    holder_name: Optional[str] = None
    gateway_order_id: Optional[str] = None


class CreateReservationResponse(BaseModel):
    message: str
    reservation: ReservationResponse
    expires_at: datetime


class ReleaseRequest(BaseModel):
    reason: Optional[str] = None


class ReleaseResponse(BaseModel):
    message: str
    reservation: ReservationResponse


class CleanupResponse(BaseModel):
    message: str
    deleted_count: int
    deleted_ids: List[str]


class AuditEntryResponse(BaseModel):
    id: int
    action: str
    actor_id: Optional[str] = None
    target_reservation_id: Optional[str] = None
    meta: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateOrderRequest(BaseModel):
    reservation_id: str = Field(alias="bookingId")

    model_config = ConfigDict(populate_by_name=True)


class OrderResponse(BaseModel):
    id: str
    amount: int
    currency: str
    receipt: str
    synthetic: bool = False


class VerifyPaymentRequest(BaseModel):
    reservation_id: str = Field(alias="bookingId")
    gateway_order_id: str = Field(alias="razorpay_order_id")
    gateway_payment_id: str = Field(alias="razorpay_payment_id")
    signature: str = Field(alias="razorpay_signature")

    model_config = ConfigDict(populate_by_name=True)


class VerifyPaymentResponse(BaseModel):
    message: str
    reservation: ReservationResponse

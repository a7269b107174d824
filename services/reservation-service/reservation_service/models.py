from datetime import datetime, timedelta, timezone

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from turf_shared.database import Base

PENDING = "pending"
CONFIRMED = "confirmed"
PAID = "paid"
CANCELLED = "cancelled"

STATUSES = (PENDING, CONFIRMED, PAID, CANCELLED)
ACTIVE_STATUSES = (PENDING, CONFIRMED, PAID)
TERMINAL_STATUSES = (PAID, CANCELLED)


def utcnow() -> datetime:
    # stored naive so sqlite and postgres compare the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True)

    holder_id = Column(String, nullable=False, index=True)
    holder_email = Column(String, nullable=True)
    holder_name = Column(String, nullable=True)

    turf_ref = Column(String, nullable=False, index=True)
    turf_name = Column(String, nullable=True)

    date = Column(String, nullable=False)
    slots = Column(JSON, nullable=False)  # [{"start_time": "10:00", "end_time": "11:00"}]
    price = Column(Float, nullable=False)

    status = Column(String, nullable=False, index=True, default=PENDING)  # pending/confirmed/paid/cancelled
    payment = Column(JSON, nullable=True)
    gateway_order_id = Column(String, nullable=True)
    gateway_payment_id = Column(String, nullable=True, unique=True, index=True)

    created_at = Column(DateTime, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=False)

    def expires_at(self, ttl_seconds: int) -> datetime:
        return self.created_at + timedelta(seconds=ttl_seconds)

    def is_expired(self, now: datetime, ttl_seconds: int) -> bool:
        return self.status == PENDING and now >= self.expires_at(ttl_seconds)

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "holder_id": self.holder_id,
            "holder_email": self.holder_email,
            "holder_name": self.holder_name,
            "turf_ref": self.turf_ref,
            "turf_name": self.turf_name,
            "date": self.date,
            "slots": list(self.slots or []),
            "price": self.price,
            "status": self.status,
            "payment": self.payment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SlotClaim(Base):
    """One row per slot held by an active reservation; the unique key is the contention key."""

    __tablename__ = "slot_claims"
    __table_args__ = (
        UniqueConstraint("turf_ref", "date", "start_time", "end_time", name="uq_slot_claims_slot"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(
        String(36),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    turf_ref = Column(String, nullable=False)
    date = Column(String, nullable=False)
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)


class AuditEntry(Base):
    __tablename__ = "audit_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=True)
    target_reservation_id = Column(String(36), nullable=True, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False)

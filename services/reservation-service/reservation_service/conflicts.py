from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ACTIVE_STATUSES, PENDING, Reservation, SlotClaim


def slot_key(slot) -> tuple[str, str]:
    if isinstance(slot, dict):
        return slot["start_time"], slot["end_time"]
    return slot.start_time, slot.end_time


def slots_clause(slots):
    return or_(
        *[
            and_(SlotClaim.start_time == start, SlotClaim.end_time == end)
            for start, end in (slot_key(s) for s in slots)
        ]
    )


def live_clause(now: datetime, ttl_seconds: int):
    """Active, and if still pending then inside its payment window."""
    cutoff = now - timedelta(seconds=ttl_seconds)
    return and_(
        Reservation.status.in_(ACTIVE_STATUSES),
        or_(Reservation.status != PENDING, Reservation.created_at > cutoff),
    )


class SlotConflictChecker:
    """
    Read-only lookup of the reservation currently holding a slot.

    `date` and the slot bounds are compared as opaque strings.
    """

    def __init__(self, session_factory, ttl_seconds: int, clock):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    async def has_conflict(self, turf_ref: str, date: str, slot) -> bool:
        return await self.first_conflict(turf_ref, date, [slot]) is not None

    async def first_conflict(self, turf_ref: str, date: str, slots) -> Reservation | None:
        async with self.session_factory() as db:
            return await self.find_in_session(db, turf_ref, date, slots, self.clock())

    async def find_in_session(
        self,
        db: AsyncSession,
        turf_ref: str,
        date: str,
        slots,
        now: datetime,
    ) -> Reservation | None:
        if not slots:
            return None
        stmt = (
            select(Reservation)
            .join(SlotClaim, SlotClaim.reservation_id == Reservation.id)
            .where(
                SlotClaim.turf_ref == turf_ref,
                SlotClaim.date == date,
                slots_clause(slots),
                live_clause(now, self.ttl_seconds),
            )
            .order_by(Reservation.created_at)
            .limit(1)
        )
        res = await db.execute(stmt)
        return res.scalars().first()

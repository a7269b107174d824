import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError

from turf_shared.events import build_event, to_json

from .capabilities import CREATE, LIST_ALL, READ, VIEW_HOLDER, Actor, can, require
from .conflicts import SlotConflictChecker, live_clause, slot_key, slots_clause
from .errors import (
    InvalidSlots,
    InvalidState,
    NotFound,
    PaymentVerificationFailed,
    SlotConflict,
    TurfUnavailable,
)
from .models import CANCELLED, PAID, PENDING, Reservation, SlotClaim, utcnow

logger = logging.getLogger(__name__)


class ReservationStore:
    """
    Durable record of booking attempts.

    Exclusivity is enforced by the unique key on ``slot_claims``: the claim rows
    are written in the same transaction as the reservation, so whichever create
    commits first owns the slot and every other concurrent create fails on the
    constraint.
    """

    def __init__(self, session_factory, catalog, publisher, settings, clock=utcnow):
        self.session_factory = session_factory
        self.catalog = catalog
        self.publisher = publisher
        self.ttl_seconds = settings.pending_ttl_seconds
        self.clock = clock
        self.checker = SlotConflictChecker(session_factory, self.ttl_seconds, clock)

    def _cutoff(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self.ttl_seconds)

    def expires_at(self, reservation: Reservation) -> datetime:
        return reservation.expires_at(self.ttl_seconds)

    # ---- create ----

    async def create(self, actor: Actor, turf_ref: str, date: str, slots) -> tuple[Reservation, datetime]:
        require(actor, None, CREATE)

        keys = [slot_key(s) for s in slots]
        if not keys:
            raise InvalidSlots("At least one slot is required")
        if len(set(keys)) != len(keys):
            raise InvalidSlots("Duplicate slots in request")

        turf = await self.catalog.get_turf(turf_ref)
        if turf is None or not turf.is_approved:
            raise TurfUnavailable(turf_ref)

        now = self.clock()
        async with self.session_factory() as db:
            rival = await self.checker.find_in_session(db, turf_ref, date, slots, now)
            if rival is not None:
                raise self._conflict(actor, rival)

            expired_ids = await self._delete_expired(db, now, turf_ref=turf_ref, date=date, slots=slots)

            reservation = Reservation(
                id=str(uuid.uuid4()),
                holder_id=str(actor.id),
                holder_email=actor.email,
                holder_name=actor.name,
                turf_ref=turf_ref,
                turf_name=turf.name,
                date=date,
                slots=[{"start_time": start, "end_time": end} for start, end in keys],
                price=turf.price_per_hour * len(keys),
                status=PENDING,
                payment=None,
                created_at=now,
                updated_at=now,
            )
            db.add(reservation)
            db.add_all(
                SlotClaim(
                    reservation_id=reservation.id,
                    turf_ref=turf_ref,
                    date=date,
                    start_time=start,
                    end_time=end,
                )
                for start, end in keys
            )

            try:
                await db.commit()
            except IntegrityError:
                # lost the race to a concurrent create
                await db.rollback()
                rival = await self.checker.find_in_session(db, turf_ref, date, slots, self.clock())
                raise self._conflict(actor, rival)

        logger.info(
            "reservation created",
            extra={"reservation_id": reservation.id, "turf_ref": turf_ref, "date": date, "slots": len(keys)},
        )
        for expired_id in expired_ids:
            await self._publish("reservation.expired", {"reservation_id": expired_id})
        await self._publish("reservation.created", reservation.snapshot())
        return reservation, self.expires_at(reservation)

    def _conflict(self, actor: Actor, rival: Reservation | None) -> SlotConflict:
        if rival is None:
            return SlotConflict(None)
        reserver = None
        if can(actor, rival, VIEW_HOLDER):
            reserver = {"name": rival.holder_name, "email": rival.holder_email}
        return SlotConflict(rival.id, reserver)

    # ---- read ----

    async def load(self, reservation_id: str) -> Reservation:
        async with self.session_factory() as db:
            reservation = await db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound(reservation_id)
        return reservation

    async def get(self, reservation_id: str, actor: Actor) -> Reservation:
        reservation = await self.load(reservation_id)
        require(actor, reservation, READ)
        return reservation

    async def list_for_turf(self, turf_ref: str, date: str | None = None, actor: Actor | None = None) -> list[dict]:
        stmt = select(Reservation).where(
            Reservation.turf_ref == turf_ref,
            live_clause(self.clock(), self.ttl_seconds),
        )
        if date:
            stmt = stmt.where(Reservation.date == date)
        stmt = stmt.order_by(Reservation.date, Reservation.created_at)

        async with self.session_factory() as db:
            rows = (await db.execute(stmt)).scalars().all()

        privileged = actor is not None and actor.is_privileged
        out = []
        for r in rows:
            item = {"date": r.date, "slots": r.slots, "status": r.status}
            if privileged:
                item["id"] = r.id
                item["holder"] = {"id": r.holder_id, "name": r.holder_name, "email": r.holder_email}
            out.append(item)
        return out

    async def list_for_holder(self, actor: Actor) -> list[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.holder_id == str(actor.id))
            .order_by(Reservation.created_at.desc())
        )
        async with self.session_factory() as db:
            return list((await db.execute(stmt)).scalars().all())

    async def list_all(self, actor: Actor, turf_ref: str | None = None, limit: int = 500) -> list[Reservation]:
        """Every reservation regardless of state, newest first, for admin dashboards."""
        require(actor, None, LIST_ALL)
        stmt = select(Reservation).order_by(Reservation.created_at.desc()).limit(limit)
        if turf_ref:
            stmt = stmt.where(Reservation.turf_ref == turf_ref)
        async with self.session_factory() as db:
            return list((await db.execute(stmt)).scalars().all())

    # ---- transitions ----

    async def attach_order(self, reservation_id: str, order_id: str):
        async with self.session_factory() as db:
            res = await db.execute(
                update(Reservation)
                .where(Reservation.id == reservation_id, Reservation.status == PENDING)
                .values(gateway_order_id=order_id, updated_at=self.clock())
            )
            updated = res.rowcount
            await db.commit()
        if updated != 1:
            current = await self.load(reservation_id)
            raise InvalidState(reservation_id, current.status, PENDING)

    async def mark_paid(self, reservation_id: str, order_id: str, payment_id: str, payment: dict) -> Reservation:
        """
        Conditional pending -> paid. Succeeds at most once per reservation, only
        for the gateway order attached to it, and only once per gateway payment.
        """
        now = self.clock()
        async with self.session_factory() as db:
            try:
                res = await db.execute(
                    update(Reservation)
                    .where(
                        Reservation.id == reservation_id,
                        Reservation.status == PENDING,
                        Reservation.created_at > self._cutoff(now),
                        Reservation.gateway_order_id == order_id,
                    )
                    .values(status=PAID, payment=payment, gateway_payment_id=payment_id, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                updated = res.rowcount
            except IntegrityError:
                # payment id already settled another reservation
                await db.rollback()
                logger.warning("gateway payment reused", extra={"reservation_id": reservation_id})
                raise PaymentVerificationFailed(reservation_id)

            if updated != 1:
                await db.rollback()
                current = await db.get(Reservation, reservation_id)
                if current is None:
                    raise NotFound(reservation_id)
                if (
                    current.status == PENDING
                    and not current.is_expired(now, self.ttl_seconds)
                    and current.gateway_order_id != order_id
                ):
                    logger.warning(
                        "order id does not belong to reservation",
                        extra={"reservation_id": reservation_id},
                    )
                    raise PaymentVerificationFailed(reservation_id)
                status = "expired" if current.is_expired(now, self.ttl_seconds) else current.status
                raise InvalidState(reservation_id, status, PAID)
            await db.commit()
            return await db.get(Reservation, reservation_id, populate_existing=True)

    async def cancel(self, reservation_id: str) -> Reservation:
        """Conditional pending -> cancelled; frees the slots in the same transaction."""
        now = self.clock()
        async with self.session_factory() as db:
            res = await db.execute(
                update(Reservation)
                .where(Reservation.id == reservation_id, Reservation.status == PENDING)
                .values(status=CANCELLED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                await db.rollback()
                current = await db.get(Reservation, reservation_id)
                if current is None:
                    raise NotFound(reservation_id)
                raise InvalidState(reservation_id, current.status, CANCELLED)
            await db.execute(delete(SlotClaim).where(SlotClaim.reservation_id == reservation_id))
            await db.commit()
            return await db.get(Reservation, reservation_id, populate_existing=True)

    # ---- expiry ----

    async def delete_expired(self, now: datetime | None = None) -> list[str]:
        now = now or self.clock()
        async with self.session_factory() as db:
            ids = await self._delete_expired(db, now)
            await db.commit()
        return ids

    async def _delete_expired(self, db, now: datetime, turf_ref=None, date=None, slots=None) -> list[str]:
        """
        Delete pending reservations older than the window. The predicate checks
        status at delete time, so a reservation paid a moment earlier survives.
        """
        predicate = and_(Reservation.status == PENDING, Reservation.created_at <= self._cutoff(now))
        if turf_ref is not None:
            holding = select(SlotClaim.reservation_id).where(
                SlotClaim.turf_ref == turf_ref,
                SlotClaim.date == date,
                slots_clause(slots),
            )
            predicate = and_(predicate, Reservation.id.in_(holding))

        res = await db.execute(
            delete(Reservation)
            .where(predicate)
            .returning(Reservation.id)
            .execution_options(synchronize_session=False)
        )
        ids = [row[0] for row in res.all()]
        if ids:
            await db.execute(delete(SlotClaim).where(SlotClaim.reservation_id.in_(ids)))
        return ids

    async def _publish(self, routing_key: str, data: dict):
        try:
            await self.publisher.publish(routing_key, to_json(build_event(routing_key, data)))
        except Exception:
            logger.exception("failed to publish %s", routing_key)

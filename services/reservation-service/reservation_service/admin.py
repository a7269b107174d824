import logging

from turf_shared.events import build_event, to_json

from .capabilities import RELEASE, VIEW_AUDIT, Actor, require
from .models import AuditEntry, Reservation

logger = logging.getLogger(__name__)

RELEASE_ACTION = "release"
DEFAULT_RELEASE_REASON = "admin_release"


class AdminOverride:
    def __init__(self, store, audit, publisher):
        self.store = store
        self.audit = audit
        self.publisher = publisher

    async def release(self, reservation_id: str, actor: Actor, reason: str | None = None) -> Reservation:
        """Cancel a still-pending reservation ahead of its expiry and free its slots."""
        require(actor, None, RELEASE)

        reservation = await self.store.cancel(reservation_id)
        reason = reason or DEFAULT_RELEASE_REASON
        logger.info(
            "pending reservation released",
            extra={"reservation_id": reservation.id, "actor": actor.id, "reason": reason},
        )

        # the release already committed; a failed audit write must not undo it
        try:
            await self.audit.record(RELEASE_ACTION, str(actor.id), reservation.id, {"reason": reason})
        except Exception:
            logger.exception("failed to write audit entry for release of %s", reservation.id)

        try:
            data = reservation.snapshot()
            data["released_by"] = str(actor.id)
            data["reason"] = reason
            await self.publisher.publish("reservation.released", to_json(build_event("reservation.released", data)))
        except Exception:
            logger.exception("failed to publish reservation.released for %s", reservation.id)

        return reservation

    async def audit_entries(self, actor: Actor, limit: int = 200) -> list[AuditEntry]:
        require(actor, None, VIEW_AUDIT)
        return await self.audit.recent(limit=limit)

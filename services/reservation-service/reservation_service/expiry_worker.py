import asyncio
import logging

from turf_shared.events import build_event, to_json

from .capabilities import CLEANUP, Actor, require

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """Deletes pending reservations whose payment window has passed."""

    def __init__(self, store, publisher, interval_seconds: float):
        self.store = store
        self.publisher = publisher
        self.interval_seconds = interval_seconds

    async def cleanup_now(self, actor: Actor) -> list[str]:
        require(actor, None, CLEANUP)
        return await self._sweep()

    async def _sweep(self) -> list[str]:
        expired = await self.store.delete_expired()
        # the deletes are committed; a broker failure only costs the event
        for reservation_id in expired:
            try:
                ev = build_event("reservation.expired", {"reservation_id": reservation_id})
                await self.publisher.publish("reservation.expired", to_json(ev))
            except Exception:
                logger.exception("failed to publish reservation.expired for %s", reservation_id)
        if expired:
            logger.info("expired pending reservations removed", extra={"count": len(expired)})
        return expired

    async def expiry_loop(self, stop_event: asyncio.Event):
        while not stop_event.is_set():
            try:
                await self._sweep()
            except Exception:
                logger.exception("expiry sweep failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

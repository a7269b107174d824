from sqlalchemy import select

from .models import AuditEntry, utcnow


class AuditSink:
    """Append-only writer for privileged actions. Entries are never updated or deleted."""

    def __init__(self, session_factory, clock=utcnow):
        self.session_factory = session_factory
        self.clock = clock

    async def record(self, action: str, actor: str | None, target: str | None, meta: dict | None = None) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            actor_id=actor,
            target_reservation_id=target,
            meta=meta or {},
            created_at=self.clock(),
        )
        async with self.session_factory() as db:
            db.add(entry)
            await db.commit()
        return entry

    async def recent(self, limit: int = 200, target: str | None = None) -> list[AuditEntry]:
        stmt = select(AuditEntry).order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc()).limit(limit)
        if target:
            stmt = stmt.where(AuditEntry.target_reservation_id == target)
        async with self.session_factory() as db:
            return list((await db.execute(stmt)).scalars().all())

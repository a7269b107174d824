from dataclasses import dataclass, field

from .errors import NotAuthorized

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"

READ = "read"
VIEW_HOLDER = "view_holder"
CREATE = "create"
PAY = "pay"
RELEASE = "release"
CLEANUP = "cleanup"
VIEW_AUDIT = "view_audit"
LIST_ALL = "list_all"

_PRIVILEGED = {ROLE_ADMIN, ROLE_SUPERADMIN}


@dataclass(frozen=True)
class Actor:
    id: str
    roles: list[str] = field(default_factory=list)
    email: str | None = None
    name: str | None = None

    def has_any_role(self, allowed) -> bool:
        roles = {r.lower() for r in self.roles}
        return not roles.isdisjoint({r.lower() for r in allowed})

    @property
    def is_privileged(self) -> bool:
        return self.has_any_role(_PRIVILEGED)


def _is_holder(actor: Actor, reservation) -> bool:
    return reservation is not None and str(reservation.holder_id) == str(actor.id)


def can(actor: Actor | None, reservation, operation: str) -> bool:
    if actor is None or not actor.roles:
        return False

    if operation in (READ, VIEW_HOLDER, PAY):
        return actor.is_privileged or _is_holder(actor, reservation)
    if operation == CREATE:
        return actor.has_any_role([ROLE_USER])
    if operation in (RELEASE, VIEW_AUDIT, LIST_ALL):
        return actor.is_privileged
    if operation == CLEANUP:
        return actor.has_any_role([ROLE_SUPERADMIN])
    return False


def require(actor: Actor | None, reservation, operation: str):
    if not can(actor, reservation, operation):
        raise NotAuthorized(operation)

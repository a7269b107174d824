from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .capabilities import Actor

bearer_scheme = HTTPBearer(auto_error=False)


def _roles(payload: dict) -> list[str]:
    roles = payload.get("roles")
    if isinstance(roles, list):
        return [str(r).lower() for r in roles if r]
    role = payload.get("role")
    return [str(role).lower()] if role else []


def _decode(request: Request, token: str) -> Actor:
    settings = request.app.state.services.settings
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="JWT_SECRET is not configured",
        )
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    sub = payload.get("sub") or payload.get("id")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
        )

    actor = Actor(id=str(sub), roles=_roles(payload), email=payload.get("email"), name=payload.get("name"))
    request.state.user_sub = actor.id
    request.state.user_roles = actor.roles
    return actor


def get_current_actor(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if not creds or creds.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer token",
        )
    return _decode(request, creds.credentials)


def get_optional_actor(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor | None:
    if not creds or creds.scheme.lower() != "bearer":
        return None
    return _decode(request, creds.credentials)

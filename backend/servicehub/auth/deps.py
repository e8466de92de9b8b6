"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user        → decode the bearer JWT into a CurrentUser
  require_permission(...) → restrict to specific granular permissions

Users live in the identity provider; the token is the only source of
identity, so none of these touch the database.
"""

from dataclasses import dataclass, field

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from servicehub.auth.jwt import decode_token
from servicehub.auth.permissions import has_permission, resolve_permissions
from servicehub.middleware.exceptions import AuthenticationError, PermissionDeniedError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    uid: str
    email: str
    role: str
    permissions: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None:
        raise AuthenticationError()

    payload = decode_token(credentials.credentials)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise AuthenticationError("Invalid or expired token")

    role = payload.get("role", "client")
    return CurrentUser(
        uid=user_id,
        email=(payload.get("email") or "").lower(),
        role=role,
        permissions=resolve_permissions(role, payload.get("permissions")),
    )


# ── Role / permission checks ────────────────────────────────

def require_permission(*perms: str):
    """Dependency factory: restrict to users who hold ALL listed permissions.

    Usage:
        @router.post("/assign-service")
        async def assign(user: CurrentUser = Depends(require_permission("assignments.write"))):
            ...
    """
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        missing = [p for p in perms if not has_permission(user.permissions, p)]
        if missing:
            raise PermissionDeniedError(f"Missing permissions: {', '.join(missing)}")
        return user

    return _check

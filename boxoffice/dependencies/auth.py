from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from boxoffice.audit.models import Actor, ActorType, RequestContext


class Role(str, Enum):
    """Supported roles."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    POS = "pos"


class User:
    """Verified identity handed over by the authentication layer."""

    def __init__(
        self,
        id: str,
        email: str | None,
        roles: tuple[Role, ...],
        outlet_id: str | None = None,
    ):
        self.id = id
        self.email = email
        self.roles = roles
        self.outlet_id = outlet_id

    def has_role(self, role: Role) -> bool:
        if Role.SUPER_ADMIN in self.roles and role is not Role.POS:
            return True
        return role in self.roles

    def as_actor(self) -> Actor:
        actor_type = ActorType.POS_USER if Role.POS in self.roles and not self.is_admin else ActorType.ADMIN
        return Actor(type=actor_type, id=self.id, email=self.email)

    @property
    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)


bearer_scheme = HTTPBearer(auto_error=False)

# Development credentials; production deployments resolve tokens against the identity provider.
TOKEN_USER_MAP: dict[str, User] = {
    "super-admin-token": User("admin-root", "root@boxoffice.local", (Role.SUPER_ADMIN,)),
    "admin-token": User("admin-1", "admin@boxoffice.local", (Role.ADMIN,)),
    "pos-token": User("pos-user-1", "pos@boxoffice.local", (Role.POS,)),
}


def resolve_user_from_token(token: str) -> User | None:
    return TOKEN_USER_MAP.get(token)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)]
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = resolve_user_from_token(credentials.credentials)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return user


def role_required(role: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(role):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


async def get_request_context(request: Request) -> RequestContext:
    return RequestContext(ip_address=client_ip(request), user_agent=request.headers.get("user-agent"))


require_admin = role_required(Role.ADMIN)
require_pos = role_required(Role.POS)

AdminUser = Annotated[User, Depends(require_admin)]
PosUser = Annotated[User, Depends(require_pos)]
RequestContextDep = Annotated[RequestContext, Depends(get_request_context)]

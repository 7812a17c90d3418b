from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hotel_ops.core.config import Settings, get_settings


class Role(str, Enum):
    """Supported roles."""

    OWNER = "owner"
    STAFF = "staff"
    GUEST = "guest"
    SERVICE = "service"


class User:
    """Simple representation of an authenticated caller."""

    def __init__(self, username: str, roles: tuple[Role, ...]):
        self.username = username
        self.roles = roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def has_any_role(self, roles: tuple[Role, ...]) -> bool:
        return any(role in self.roles for role in roles)


ANONYMOUS_USERNAME = "guest"

_ROLE_GRANTS: dict[Role, tuple[Role, ...]] = {
    Role.OWNER: (Role.OWNER, Role.STAFF, Role.GUEST),
    Role.STAFF: (Role.STAFF, Role.GUEST),
    Role.SERVICE: (Role.SERVICE,),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None, settings: Settings) -> User:
    """Return the caller associated with ``token``; no token means an anonymous guest."""

    if token is None:
        return User(username=ANONYMOUS_USERNAME, roles=(Role.GUEST,))

    token_maps = (
        (Role.OWNER, settings.owner_tokens),
        (Role.STAFF, settings.staff_tokens),
        (Role.SERVICE, settings.service_tokens),
    )
    for role, tokens in token_maps:
        if token in tokens:
            return User(username=tokens[token], roles=_ROLE_GRANTS[role])

    raise HTTPException(status_code=401, detail="Invalid authentication credentials")


def settings_for(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    return settings if isinstance(settings, Settings) else get_settings()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token, settings_for(request))
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds at least one of ``roles``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_any_role(roles):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]

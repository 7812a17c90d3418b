from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from hotel_ops.dependencies.auth import ANONYMOUS_USERNAME, Role


@dataclass(frozen=True, slots=True)
class AuthProfile:
    """Caller identity shown and used by the console."""

    username: str
    token: str | None
    roles: tuple[Role, ...]

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def label(self) -> str:
        return f"{self.username} ({', '.join(role.value for role in self.roles)})"


def anonymous_profile() -> AuthProfile:
    return AuthProfile(ANONYMOUS_USERNAME, None, (Role.GUEST,))


def profile_from_identity(token: str | None, identity: Mapping[str, Any]) -> AuthProfile:
    """Build a profile from the API's ``/ping/whoami`` answer, ignoring unknown roles."""

    roles = tuple(Role(value) for value in identity.get("roles", []) if value in Role._value2member_map_)
    return AuthProfile(str(identity.get("user", ANONYMOUS_USERNAME)), token or None, roles or (Role.GUEST,))

from dataclasses import dataclass
from enum import Enum

from portal.core.errors import AuthorizationError


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYER = "employer"
    CANDIDATE = "candidate"


@dataclass(slots=True)
class Principal:
    user_id: str
    role: Role
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def require_roles(self, allowed: set[Role]) -> None:
        if self.role not in allowed:
            names = ", ".join(sorted(role.value for role in allowed))
            raise AuthorizationError(f"requires role: {names}")

    def require_owner(self, owner_id: str | None, *, resource: str, action: str = "modify") -> None:
        """Admins pass unconditionally; anyone else must be the owning user."""
        if self.is_admin:
            return
        if owner_id is None or owner_id != self.user_id:
            raise AuthorizationError(f"not authorized to {action} this {resource}")

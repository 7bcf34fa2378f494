from dataclasses import dataclass, field

from .constants import Permission, ROLE_COLUMNS


@dataclass(frozen=True)
class RoleGrants:
    """Read-only snapshot of a server role as seen by the resolver."""
    id: int
    server_id: int
    name: str = ""
    position: int = 0
    grants: frozenset[Permission] = field(default_factory=frozenset)
    color: str = "#6B7280"
    mentionable: bool = False

    @property
    def administrator(self) -> bool:
        return Permission.ADMINISTRATOR in self.grants

    def grants_permission(self, permission: Permission) -> bool:
        return permission in self.grants

    @classmethod
    def from_model(cls, role) -> "RoleGrants":
        """Build a snapshot from a `firepit.db.models.Role` row."""
        grants = frozenset(
            perm for perm, column in ROLE_COLUMNS.items() if getattr(role, column, False)
        )
        return cls(
            id=role.id,
            server_id=role.server_id,
            name=role.name or "",
            position=role.position or 0,
            grants=grants,
            color=role.color or "#6B7280",
            mentionable=bool(role.mentionable),
        )

"""
Channel permission override value types.

An override targets exactly one role or exactly one user. The target is a
tagged union so a row that names both, or neither, cannot be represented.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from .constants import Permission, parse_permissions


@dataclass(frozen=True)
class RoleTarget:
    role_id: int


@dataclass(frozen=True)
class UserTarget:
    user_id: int


OverrideTarget = Union[RoleTarget, UserTarget]


class InvalidOverrideTarget(ValueError):
    pass


def target_from_columns(role_id: Optional[int], user_id: Optional[int]) -> OverrideTarget:
    """Map the nullable role_id/user_id storage columns onto a target."""
    if role_id is not None and user_id is not None:
        raise InvalidOverrideTarget("Cannot specify both role_id and user_id")
    if role_id is not None:
        return RoleTarget(role_id)
    if user_id is not None:
        return UserTarget(user_id)
    raise InvalidOverrideTarget("Either role_id or user_id must be provided")


@dataclass(frozen=True)
class ChannelOverride:
    channel_id: int
    target: OverrideTarget
    # Raw names as stored; unknown entries are tolerated and skipped on resolve
    allow: tuple = field(default_factory=tuple)
    deny: tuple = field(default_factory=tuple)
    id: Optional[int] = None

    @property
    def allowed(self) -> frozenset[Permission]:
        return parse_permissions(self.allow)

    @property
    def denied(self) -> frozenset[Permission]:
        return parse_permissions(self.deny)

    @classmethod
    def from_model(cls, row) -> "ChannelOverride":
        """Build from a `firepit.db.models.ChannelPermissionOverride` row."""
        return cls(
            channel_id=row.channel_id,
            target=target_from_columns(row.role_id, row.user_id),
            allow=tuple(row.allow or ()),
            deny=tuple(row.deny or ()),
            id=row.id,
        )

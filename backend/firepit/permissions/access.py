"""
Server and channel access for a user.

Each call walks ownership -> membership -> role assignment -> roles ->
channel overrides against the database and hands the result to the pure
resolver. Nothing is cached between calls, so every request sees the
current role and override data.
"""
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from firepit.core.logging import permissions_logger, log_operation
from firepit.db.models import Channel
from firepit.permissions import repository
from firepit.permissions.constants import Permission
from firepit.permissions.exceptions import ServerNotFound, ChannelNotFound
from firepit.permissions.roles import RoleGrants
from firepit.permissions.service import (
    EffectivePermissions,
    permission_service,
    all_granted,
    none_granted,
    to_camel_dict,
)


@dataclass
class ServerAccess:
    server_id: int
    is_server_owner: bool
    is_member: bool
    permissions: EffectivePermissions = field(default_factory=none_granted)
    roles: list[RoleGrants] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "server_id": self.server_id,
            "is_server_owner": self.is_server_owner,
            "is_member": self.is_member,
            "permissions": to_camel_dict(self.permissions),
        }


@dataclass
class ChannelAccess:
    channel_id: int
    server_id: int
    is_server_owner: bool
    is_member: bool
    permissions: EffectivePermissions = field(default_factory=none_granted)

    @property
    def can_read(self) -> bool:
        return self.permissions[Permission.READ_MESSAGES]

    @property
    def can_send(self) -> bool:
        return self.permissions[Permission.SEND_MESSAGES]

    def to_dict(self) -> dict:
        return {
            "channel_id": self.channel_id,
            "server_id": self.server_id,
            "is_server_owner": self.is_server_owner,
            "is_member": self.is_member,
            "can_read": self.can_read,
            "can_send": self.can_send,
            "permissions": to_camel_dict(self.permissions),
        }


def _bypasses_overrides(access: ServerAccess) -> bool:
    return access.is_server_owner or access.permissions[Permission.ADMINISTRATOR]


async def get_server_permissions_for_user(
    db: AsyncSession,
    server_id: int,
    user_id: int,
) -> ServerAccess:
    server = await repository.get_server(db, server_id)
    if server is None:
        raise ServerNotFound()

    if server.owner_id == user_id:
        return ServerAccess(
            server_id=server_id,
            is_server_owner=True,
            is_member=True,
            permissions=all_granted(),
        )

    # Non-members stop here, before any role data is read
    if not await repository.is_server_member(db, server_id, user_id):
        return ServerAccess(server_id=server_id, is_server_owner=False, is_member=False)

    role_ids = await repository.get_assigned_role_ids(db, server_id, user_id)
    roles = await repository.get_roles(db, server_id, role_ids)

    return ServerAccess(
        server_id=server_id,
        is_server_owner=False,
        is_member=True,
        permissions=permission_service.get_effective_permissions(roles, user_id=user_id),
        roles=roles,
    )


@log_operation("resolve_channel_access", permissions_logger)
async def get_channel_access_for_user(
    db: AsyncSession,
    channel_id: int,
    user_id: int,
) -> ChannelAccess:
    channel = await repository.get_channel(db, channel_id)
    if channel is None:
        raise ChannelNotFound()

    server_access = await get_server_permissions_for_user(db, channel.server_id, user_id)
    access = ChannelAccess(
        channel_id=channel_id,
        server_id=channel.server_id,
        is_server_owner=server_access.is_server_owner,
        is_member=server_access.is_member,
    )

    if not server_access.is_member:
        return access

    if _bypasses_overrides(server_access):
        access.permissions = all_granted()
        return access

    role_ids = [role.id for role in server_access.roles]
    overrides = await repository.get_applicable_overrides(db, channel_id, user_id, role_ids)
    access.permissions = permission_service.get_effective_permissions(
        server_access.roles,
        overrides,
        user_id=user_id,
    )

    permissions_logger.resolved(
        "channel",
        user_id=user_id,
        channel_id=channel_id,
        roles=role_ids,
        overrides=len(overrides),
        can_read=access.can_read,
    )
    return access


async def list_visible_channels(
    db: AsyncSession,
    server_id: int,
    user_id: int,
) -> list[Channel]:
    """Channels of the server the user can read, in display order."""
    server_access = await get_server_permissions_for_user(db, server_id, user_id)
    if not server_access.is_member:
        return []

    channels = await repository.get_server_channels(db, server_id)
    if _bypasses_overrides(server_access):
        return channels

    role_ids = [role.id for role in server_access.roles]
    overrides = await repository.get_overrides_by_channel(
        db, [c.id for c in channels], user_id, role_ids
    )

    visible = []
    for channel in channels:
        effective = permission_service.get_effective_permissions(
            server_access.roles,
            overrides.get(channel.id, []),
            user_id=user_id,
        )
        if effective[Permission.READ_MESSAGES]:
            visible.append(channel)
    return visible

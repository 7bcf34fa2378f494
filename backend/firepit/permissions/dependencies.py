from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from firepit.core.logging import permissions_logger
from firepit.core.security import get_current_user
from firepit.db.database import get_db
from firepit.permissions.access import (
    ServerAccess,
    ChannelAccess,
    get_server_permissions_for_user,
    get_channel_access_for_user,
)
from firepit.permissions.constants import Permission
from firepit.permissions.exceptions import PermissionDenied, NotServerMember
from firepit.permissions.service import PermissionService


def ensure_server_permission(access: ServerAccess, permission: Permission, user_id: int) -> None:
    """Raise 403 unless the resolved server access grants `permission`."""
    if not access.is_member:
        permissions_logger.denied("not_member", user_id=user_id, server_id=access.server_id)
        raise NotServerMember()
    if not PermissionService.has_permission(permission, access.permissions):
        permissions_logger.denied(
            "missing_permission",
            user_id=user_id,
            server_id=access.server_id,
            permission=permission.value,
        )
        raise PermissionDenied(permission.value)


def require_server_permission(permission: Permission):
    """Dependency for routes with a `server_id` path parameter."""
    async def dependency(
        server_id: int,
        db: AsyncSession = Depends(get_db),
        user=Depends(get_current_user),
    ) -> ServerAccess:
        access = await get_server_permissions_for_user(db, server_id, user["user_id"])
        ensure_server_permission(access, permission, user["user_id"])
        return access

    return dependency


def require_channel_permission(permission: Permission):
    """Dependency for routes with a `channel_id` path parameter."""
    async def dependency(
        channel_id: int,
        db: AsyncSession = Depends(get_db),
        user=Depends(get_current_user),
    ) -> ChannelAccess:
        access = await get_channel_access_for_user(db, channel_id, user["user_id"])
        if not access.is_member:
            permissions_logger.denied("not_member", user_id=user["user_id"], channel_id=channel_id)
            raise NotServerMember()
        if not PermissionService.has_permission(permission, access.permissions):
            permissions_logger.denied(
                "missing_permission",
                user_id=user["user_id"],
                channel_id=channel_id,
                permission=permission.value,
            )
            raise PermissionDenied(permission.value)
        return access

    return dependency

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from firepit.core.config import settings
from firepit.db.models import (
    Server, ServerMember, Channel, Role, RoleAssignment, ChannelPermissionOverride,
)
from firepit.permissions.overrides import ChannelOverride, OverrideTarget, RoleTarget
from firepit.permissions.roles import RoleGrants


async def get_server(db: AsyncSession, server_id: int) -> Server | None:
    result = await db.execute(select(Server).where(Server.id == server_id))
    return result.scalar_one_or_none()


async def get_channel(db: AsyncSession, channel_id: int) -> Channel | None:
    result = await db.execute(select(Channel).where(Channel.id == channel_id))
    return result.scalar_one_or_none()


async def is_server_member(db: AsyncSession, server_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(ServerMember.id)
        .where(ServerMember.server_id == server_id)
        .where(ServerMember.user_id == user_id)
        .limit(1)
    )
    return result.first() is not None


async def get_assigned_role_ids(
    db: AsyncSession,
    server_id: int,
    user_id: int,
) -> list[int]:
    result = await db.execute(
        select(RoleAssignment.role_id)
        .where(RoleAssignment.server_id == server_id)
        .where(RoleAssignment.user_id == user_id)
    )
    return [r[0] for r in result.all()]


async def get_roles(
    db: AsyncSession,
    server_id: int,
    role_ids: list[int],
) -> list[RoleGrants]:
    if not role_ids:
        return []
    result = await db.execute(
        select(Role)
        .where(Role.server_id == server_id)
        .where(Role.id.in_(role_ids))
        .limit(settings.ROLE_QUERY_LIMIT)
    )
    return [RoleGrants.from_model(r) for r in result.scalars().all()]


async def get_applicable_overrides(
    db: AsyncSession,
    channel_id: int,
    user_id: int,
    role_ids: list[int],
) -> list[ChannelOverride]:
    """Overrides on the channel that target the user or one of their roles."""
    targets = [ChannelPermissionOverride.user_id == user_id]
    if role_ids:
        targets.append(ChannelPermissionOverride.role_id.in_(role_ids))

    result = await db.execute(
        select(ChannelPermissionOverride)
        .where(ChannelPermissionOverride.channel_id == channel_id)
        .where(or_(*targets))
        .limit(settings.OVERRIDE_QUERY_LIMIT)
    )
    return [ChannelOverride.from_model(row) for row in result.scalars().all()]


async def override_exists(db: AsyncSession, channel_id: int, target: OverrideTarget) -> bool:
    if isinstance(target, RoleTarget):
        matches = ChannelPermissionOverride.role_id == target.role_id
    else:
        matches = ChannelPermissionOverride.user_id == target.user_id

    result = await db.execute(
        select(ChannelPermissionOverride.id)
        .where(ChannelPermissionOverride.channel_id == channel_id, matches)
        .limit(1)
    )
    return result.first() is not None


async def get_server_channels(db: AsyncSession, server_id: int) -> list[Channel]:
    result = await db.execute(
        select(Channel)
        .where(Channel.server_id == server_id)
        .order_by(Channel.position, Channel.id)
    )
    return list(result.scalars().all())


async def get_overrides_by_channel(
    db: AsyncSession,
    channel_ids: list[int],
    user_id: int,
    role_ids: list[int],
) -> dict[int, list[ChannelOverride]]:
    """Batch form of get_applicable_overrides keyed by channel id."""
    grouped: dict[int, list[ChannelOverride]] = {cid: [] for cid in channel_ids}
    if not channel_ids:
        return grouped

    targets = [ChannelPermissionOverride.user_id == user_id]
    if role_ids:
        targets.append(ChannelPermissionOverride.role_id.in_(role_ids))

    result = await db.execute(
        select(ChannelPermissionOverride)
        .where(ChannelPermissionOverride.channel_id.in_(channel_ids))
        .where(or_(*targets))
    )
    for row in result.scalars().all():
        grouped.setdefault(row.channel_id, []).append(ChannelOverride.from_model(row))
    return grouped

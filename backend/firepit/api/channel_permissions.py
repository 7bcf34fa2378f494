from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel
from typing import Optional, List

from firepit.db.database import get_db
from firepit.db.models import Channel, ChannelPermissionOverride, Role
from firepit.core.security import get_current_user
from firepit.core.logging import api_logger
from firepit.permissions import repository
from firepit.permissions.access import get_server_permissions_for_user
from firepit.permissions.constants import Permission, is_valid_permission
from firepit.permissions.dependencies import ensure_server_permission
from firepit.permissions.exceptions import ChannelNotFound
from firepit.permissions.overrides import InvalidOverrideTarget, RoleTarget, target_from_columns

router = APIRouter()

DUPLICATE_OVERRIDE = "Override already exists for this role/user in this channel"


class OverrideCreateRequest(BaseModel):
    channel_id: int
    role_id: Optional[int] = None
    user_id: Optional[int] = None
    allow: List[str] = []
    deny: List[str] = []


class OverrideUpdateRequest(BaseModel):
    allow: List[str] = []
    deny: List[str] = []


class OverrideResponse(BaseModel):
    id: int
    channel_id: int
    role_id: Optional[int]
    user_id: Optional[int]
    allow: List[str]
    deny: List[str]

    class Config:
        from_attributes = True


def _validate_permission_lists(allow: List[str], deny: List[str]) -> None:
    if not all(is_valid_permission(p) for p in allow + deny):
        raise HTTPException(status_code=400, detail="Invalid permission values")
    if set(allow) & set(deny):
        raise HTTPException(
            status_code=400,
            detail="A permission cannot be both allowed and denied",
        )


async def _require_manage_channels(db: AsyncSession, channel_id: int, user_id: int) -> Channel:
    channel = await repository.get_channel(db, channel_id)
    if channel is None:
        raise ChannelNotFound()
    access = await get_server_permissions_for_user(db, channel.server_id, user_id)
    ensure_server_permission(access, Permission.MANAGE_CHANNELS, user_id)
    return channel


async def _get_override_or_404(db: AsyncSession, override_id: int) -> ChannelPermissionOverride:
    result = await db.execute(
        select(ChannelPermissionOverride).where(ChannelPermissionOverride.id == override_id)
    )
    override = result.scalar_one_or_none()
    if not override:
        raise HTTPException(status_code=404, detail="Override not found")
    return override


@router.get("/")
async def list_overrides(
    channel_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_manage_channels(db, channel_id, current_user["user_id"])
    result = await db.execute(
        select(ChannelPermissionOverride)
        .where(ChannelPermissionOverride.channel_id == channel_id)
        .order_by(ChannelPermissionOverride.id)
    )
    overrides = [OverrideResponse.model_validate(o) for o in result.scalars().all()]
    return {"overrides": overrides}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_override(
    request: OverrideCreateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    channel = await _require_manage_channels(db, request.channel_id, current_user["user_id"])

    try:
        target = target_from_columns(request.role_id, request.user_id)
    except InvalidOverrideTarget as e:
        raise HTTPException(status_code=400, detail=str(e))

    _validate_permission_lists(request.allow, request.deny)

    if isinstance(target, RoleTarget):
        result = await db.execute(
            select(Role.id).where(Role.id == target.role_id, Role.server_id == channel.server_id)
        )
        if result.first() is None:
            raise HTTPException(status_code=404, detail="Role not found")
    elif not await repository.is_server_member(db, channel.server_id, target.user_id):
        raise HTTPException(status_code=400, detail="User is not a member of this server")

    if await repository.override_exists(db, channel.id, target):
        raise HTTPException(status_code=400, detail=DUPLICATE_OVERRIDE)

    override = ChannelPermissionOverride(
        channel_id=channel.id,
        role_id=request.role_id,
        user_id=request.user_id,
        allow=list(dict.fromkeys(request.allow)),
        deny=list(dict.fromkeys(request.deny)),
    )
    db.add(override)
    try:
        await db.commit()
    except IntegrityError:
        # Unique (channel, target) taken by a concurrent create
        await db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_OVERRIDE)
    await db.refresh(override)

    api_logger.info(
        f"Created channel override {override.id}",
        channel_id=channel.id,
        role_id=override.role_id,
        user_id=override.user_id,
    )
    return {"override": OverrideResponse.model_validate(override)}


@router.put("/{override_id}")
async def update_override(
    override_id: int,
    request: OverrideUpdateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    override = await _get_override_or_404(db, override_id)
    await _require_manage_channels(db, override.channel_id, current_user["user_id"])
    _validate_permission_lists(request.allow, request.deny)

    override.allow = list(dict.fromkeys(request.allow))
    override.deny = list(dict.fromkeys(request.deny))
    await db.commit()
    await db.refresh(override)
    return {"override": OverrideResponse.model_validate(override)}


@router.delete("/{override_id}")
async def delete_override(
    override_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    override = await _get_override_or_404(db, override_id)
    await _require_manage_channels(db, override.channel_id, current_user["user_id"])

    await db.delete(override)
    await db.commit()
    return {"success": True}

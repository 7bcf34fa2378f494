from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from firepit.db.database import get_db
from firepit.core.security import get_current_user
from firepit.api.servers import ChannelResponse
from firepit.permissions import repository
from firepit.permissions.access import ChannelAccess, get_channel_access_for_user
from firepit.permissions.constants import Permission
from firepit.permissions.dependencies import require_channel_permission

router = APIRouter()


@router.get("/{channel_id}", response_model=ChannelResponse)
async def get_channel(
    channel_id: int,
    _access: ChannelAccess = Depends(require_channel_permission(Permission.READ_MESSAGES)),
    db: AsyncSession = Depends(get_db),
):
    return await repository.get_channel(db, channel_id)


@router.get("/{channel_id}/permissions")
async def get_channel_permissions(
    channel_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Effective permissions of the caller in this channel."""
    access = await get_channel_access_for_user(db, channel_id, current_user["user_id"])
    return access.to_dict()

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from pydantic import BaseModel, Field
from typing import Optional, List

from firepit.db.database import get_db
from firepit.db.models import Role, RoleAssignment, ChannelPermissionOverride
from firepit.core.security import get_current_user
from firepit.core.logging import api_logger
from firepit.permissions.access import ServerAccess, get_server_permissions_for_user
from firepit.permissions.constants import Permission
from firepit.permissions.dependencies import ensure_server_permission
from firepit.permissions.roles import RoleGrants
from firepit.permissions.service import permission_service

router = APIRouter()

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class RoleCreateRequest(BaseModel):
    server_id: int
    name: str = Field(min_length=1, max_length=100)
    color: str = Field(default="#5865F2", pattern=HEX_COLOR)
    position: int = 0
    mentionable: bool = True
    read_messages: bool = True
    send_messages: bool = True
    manage_messages: bool = False
    manage_channels: bool = False
    manage_roles: bool = False
    manage_server: bool = False
    mention_everyone: bool = False
    administrator: bool = False


class RoleUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    position: Optional[int] = None
    mentionable: Optional[bool] = None
    read_messages: Optional[bool] = None
    send_messages: Optional[bool] = None
    manage_messages: Optional[bool] = None
    manage_channels: Optional[bool] = None
    manage_roles: Optional[bool] = None
    manage_server: Optional[bool] = None
    mention_everyone: Optional[bool] = None
    administrator: Optional[bool] = None


class RoleResponse(BaseModel):
    id: int
    server_id: int
    name: str
    color: str
    position: int
    mentionable: bool
    read_messages: bool
    send_messages: bool
    manage_messages: bool
    manage_channels: bool
    manage_roles: bool
    manage_server: bool
    mention_everyone: bool
    administrator: bool

    class Config:
        from_attributes = True


async def _require_manage_roles(db: AsyncSession, server_id: int, user_id: int) -> ServerAccess:
    access = await get_server_permissions_for_user(db, server_id, user_id)
    ensure_server_permission(access, Permission.MANAGE_ROLES, user_id)
    return access


def _ensure_can_manage(access: ServerAccess, target: RoleGrants) -> None:
    if not permission_service.can_manage_role(access.roles, target, is_owner=access.is_server_owner):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot manage a role at or above your highest role",
        )


def _ensure_can_grant(access: ServerAccess, grants) -> None:
    missing = permission_service.missing_grants(grants, access.permissions)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot grant permissions you do not have: " + ", ".join(p.value for p in missing),
        )


async def _get_role_or_404(db: AsyncSession, role_id: int) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@router.get("/", response_model=List[RoleResponse])
async def list_roles(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_manage_roles(db, server_id, current_user["user_id"])
    result = await db.execute(
        select(Role)
        .where(Role.server_id == server_id)
        .order_by(Role.position.desc(), Role.id)
    )
    return result.scalars().all()


@router.post("/", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    request: RoleCreateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    access = await _require_manage_roles(db, request.server_id, current_user["user_id"])

    role = Role(**request.model_dump())
    grants = RoleGrants.from_model(role)
    _ensure_can_manage(access, grants)
    _ensure_can_grant(access, grants.grants)

    db.add(role)
    await db.commit()
    await db.refresh(role)
    api_logger.info(f"Created role {role.id}", server_id=role.server_id, name=role.name)
    return role


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    request: RoleUpdateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role = await _get_role_or_404(db, role_id)
    access = await _require_manage_roles(db, role.server_id, current_user["user_id"])
    before = RoleGrants.from_model(role)
    _ensure_can_manage(access, before)

    for key, value in request.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(role, key, value)

    # The edited role must still sit below the editor, and may only gain
    # kinds the editor holds
    after = RoleGrants.from_model(role)
    _ensure_can_manage(access, after)
    _ensure_can_grant(access, after.grants - before.grants)

    await db.commit()
    await db.refresh(role)
    return role


@router.delete("/{role_id}")
async def delete_role(
    role_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role = await _get_role_or_404(db, role_id)
    access = await _require_manage_roles(db, role.server_id, current_user["user_id"])
    _ensure_can_manage(access, RoleGrants.from_model(role))

    await db.execute(delete(RoleAssignment).where(RoleAssignment.role_id == role_id))
    await db.execute(
        delete(ChannelPermissionOverride).where(ChannelPermissionOverride.role_id == role_id)
    )
    await db.delete(role)
    await db.commit()
    api_logger.info(f"Deleted role {role_id}", server_id=access.server_id)
    return {"success": True}

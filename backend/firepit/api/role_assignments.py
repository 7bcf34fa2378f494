from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel
from typing import Optional

from firepit.db.database import get_db
from firepit.db.models import Role, RoleAssignment
from firepit.core.security import get_current_user
from firepit.core.logging import api_logger
from firepit.permissions import repository
from firepit.permissions.access import ServerAccess, get_server_permissions_for_user
from firepit.permissions.constants import Permission
from firepit.permissions.dependencies import ensure_server_permission
from firepit.permissions.exceptions import NotServerMember
from firepit.permissions.roles import RoleGrants
from firepit.permissions.service import permission_service

router = APIRouter()


class RoleAssignmentRequest(BaseModel):
    server_id: int
    user_id: int
    role_id: int


async def _load_assignable_role(
    db: AsyncSession,
    request: RoleAssignmentRequest,
    actor_id: int,
) -> tuple[ServerAccess, Role]:
    access = await get_server_permissions_for_user(db, request.server_id, actor_id)
    ensure_server_permission(access, Permission.MANAGE_ROLES, actor_id)

    result = await db.execute(
        select(Role).where(Role.id == request.role_id, Role.server_id == request.server_id)
    )
    role = result.scalar_one_or_none()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")

    if not permission_service.can_manage_role(
        access.roles, RoleGrants.from_model(role), is_owner=access.is_server_owner
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot assign a role at or above your highest role",
        )
    return access, role


@router.get("/")
async def list_role_assignments(
    server_id: int,
    user_id: Optional[int] = None,
    role_id: Optional[int] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Assigned role ids per user, optionally narrowed to one user or one role."""
    access = await get_server_permissions_for_user(db, server_id, current_user["user_id"])
    if not access.is_member:
        raise NotServerMember()

    query = select(RoleAssignment).where(RoleAssignment.server_id == server_id)
    if user_id is not None:
        query = query.where(RoleAssignment.user_id == user_id)
    if role_id is not None:
        query = query.where(RoleAssignment.role_id == role_id)

    result = await db.execute(query.order_by(RoleAssignment.user_id, RoleAssignment.role_id))
    assignments: dict[int, list[int]] = {}
    for row in result.scalars().all():
        assignments.setdefault(row.user_id, []).append(row.role_id)

    return {
        "assignments": [
            {"user_id": uid, "role_ids": role_ids} for uid, role_ids in assignments.items()
        ]
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
async def assign_role(
    request: RoleAssignmentRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    access, role = await _load_assignable_role(db, request, current_user["user_id"])
    missing = permission_service.missing_grants(RoleGrants.from_model(role).grants, access.permissions)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot assign a role with permissions you do not have: "
            + ", ".join(p.value for p in missing),
        )

    if not await repository.is_server_member(db, request.server_id, request.user_id):
        raise HTTPException(status_code=400, detail="User is not a member of this server")

    role_ids = await repository.get_assigned_role_ids(db, request.server_id, request.user_id)
    if request.role_id not in role_ids:
        db.add(RoleAssignment(
            server_id=request.server_id,
            user_id=request.user_id,
            role_id=request.role_id,
        ))
        await db.commit()
        role_ids.append(request.role_id)
        api_logger.info(
            f"Assigned role {request.role_id} to user {request.user_id}",
            server_id=request.server_id,
        )

    return {"user_id": request.user_id, "role_ids": role_ids}


@router.delete("/")
async def unassign_role(
    server_id: int,
    user_id: int,
    role_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    request = RoleAssignmentRequest(server_id=server_id, user_id=user_id, role_id=role_id)
    await _load_assignable_role(db, request, current_user["user_id"])

    result = await db.execute(
        select(RoleAssignment).where(
            RoleAssignment.server_id == server_id,
            RoleAssignment.user_id == user_id,
            RoleAssignment.role_id == role_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment:
        await db.delete(assignment)
        await db.commit()

    role_ids = await repository.get_assigned_role_ids(db, server_id, user_id)
    return {"user_id": user_id, "role_ids": role_ids}

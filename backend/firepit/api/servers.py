from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field
from typing import Optional, List

from firepit.db.database import get_db
from firepit.db.models import Server, ServerMember, Channel
from firepit.core.security import get_current_user
from firepit.core.logging import api_logger
from firepit.permissions import repository
from firepit.permissions.access import get_server_permissions_for_user, list_visible_channels
from firepit.permissions.constants import Permission
from firepit.permissions.dependencies import require_server_permission
from firepit.permissions.exceptions import ServerNotFound

router = APIRouter()


class ServerCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class ServerResponse(BaseModel):
    id: int
    name: str
    owner_id: int

    class Config:
        from_attributes = True


class ChannelCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    topic: Optional[str] = None
    position: int = 0


class ChannelResponse(BaseModel):
    id: int
    server_id: int
    name: str
    topic: Optional[str]
    position: int

    class Config:
        from_attributes = True


@router.post("/", response_model=ServerResponse, status_code=status.HTTP_201_CREATED)
async def create_server(
    request: ServerCreateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    server = Server(name=request.name, owner_id=current_user["user_id"])
    db.add(server)
    await db.commit()
    await db.refresh(server)

    # Owner is also a regular member
    db.add(ServerMember(server_id=server.id, user_id=current_user["user_id"]))
    await db.commit()

    api_logger.info(f"Created server {server.id}", owner_id=server.owner_id)
    return server


@router.post("/{server_id}/members")
async def join_server(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if await repository.get_server(db, server_id) is None:
        raise ServerNotFound()

    user_id = current_user["user_id"]
    if await repository.is_server_member(db, server_id, user_id):
        return {"server_id": server_id, "user_id": user_id, "joined": False}

    db.add(ServerMember(server_id=server_id, user_id=user_id))
    await db.commit()
    return {"server_id": server_id, "user_id": user_id, "joined": True}


@router.get("/{server_id}/permissions")
async def get_server_permissions(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    access = await get_server_permissions_for_user(db, server_id, current_user["user_id"])
    return access.to_dict()


@router.get("/{server_id}/channels", response_model=List[ChannelResponse])
async def list_channels(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await list_visible_channels(db, server_id, current_user["user_id"])


@router.post(
    "/{server_id}/channels",
    response_model=ChannelResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_channel(
    server_id: int,
    request: ChannelCreateRequest,
    _access=Depends(require_server_permission(Permission.MANAGE_CHANNELS)),
    db: AsyncSession = Depends(get_db),
):
    channel = Channel(
        server_id=server_id,
        name=request.name,
        topic=request.topic,
        position=request.position,
    )
    db.add(channel)
    await db.commit()
    await db.refresh(channel)
    return channel

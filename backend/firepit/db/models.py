from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON,
    CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from firepit.db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    display_name = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    server_memberships = relationship("ServerMember", back_populates="user")


class Server(Base):
    __tablename__ = "servers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    channels = relationship("Channel", back_populates="server")
    members = relationship("ServerMember", back_populates="server")
    roles = relationship("Role", back_populates="server")


class ServerMember(Base):
    __tablename__ = "server_members"
    __table_args__ = (
        UniqueConstraint("server_id", "user_id", name="uq_server_member"),
    )

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(Integer, ForeignKey("servers.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    server = relationship("Server", back_populates="members")
    user = relationship("User", back_populates="server_memberships")


class Channel(Base):
    __tablename__ = "channels"

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(Integer, ForeignKey("servers.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    topic = Column(Text)
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    server = relationship("Server", back_populates="channels")


class Role(Base):
    """
    Server-scoped role. Each boolean column is the role's base grant for
    the permission kind of the same (snake_case) name.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(Integer, ForeignKey("servers.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(7), default="#6B7280", nullable=False)
    position = Column(Integer, default=0, nullable=False)
    mentionable = Column(Boolean, default=False, nullable=False)

    read_messages = Column(Boolean, default=False, nullable=False)
    send_messages = Column(Boolean, default=False, nullable=False)
    manage_messages = Column(Boolean, default=False, nullable=False)
    manage_channels = Column(Boolean, default=False, nullable=False)
    manage_roles = Column(Boolean, default=False, nullable=False)
    manage_server = Column(Boolean, default=False, nullable=False)
    mention_everyone = Column(Boolean, default=False, nullable=False)
    administrator = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    server = relationship("Server", back_populates="roles")


class RoleAssignment(Base):
    __tablename__ = "role_assignments"
    __table_args__ = (
        Index("ix_role_assignments_server_user", "server_id", "user_id"),
    )

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    server_id = Column(Integer, ForeignKey("servers.id"), primary_key=True)
    role_id = Column(Integer, ForeignKey("roles.id"), primary_key=True)

    role = relationship("Role")


class ChannelPermissionOverride(Base):
    """
    Channel-level allow/deny adjustment for exactly one role or one user.
    allow/deny hold permission kind names (e.g. "sendMessages").
    """
    __tablename__ = "channel_permission_overrides"
    __table_args__ = (
        CheckConstraint(
            "(role_id IS NULL) <> (user_id IS NULL)",
            name="ck_override_single_target",
        ),
        UniqueConstraint("channel_id", "role_id", name="uq_override_channel_role"),
        UniqueConstraint("channel_id", "user_id", name="uq_override_channel_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(Integer, ForeignKey("channels.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    allow = Column(JSON, default=list, nullable=False)
    deny = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from firepit.main import app
from firepit.core.security import create_access_token
from firepit.db.database import Base, get_db
from firepit.db.models import (
    User, Server, ServerMember, Channel, Role, RoleAssignment, ChannelPermissionOverride,
)


@pytest.fixture(scope="session")
async def test_engine(tmp_path_factory):
    # On-disk SQLite so the app's sessions and the test session share one database
    db_path = tmp_path_factory.mktemp("db") / "test_firepit.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_session(test_engine):
    """Session on an emptied database (schema kept)."""
    async with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(test_engine, test_session):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class Seeder:
    """Inserts users, servers, roles and overrides directly through the test session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    async def user(self, username: str) -> User:
        return await self._save(User(username=username, display_name=username.title()))

    async def server(self, owner: User, name: str = "Campfire") -> Server:
        server = await self._save(Server(name=name, owner_id=owner.id))
        await self.member(server, owner)
        return server

    async def member(self, server: Server, user: User) -> ServerMember:
        return await self._save(ServerMember(server_id=server.id, user_id=user.id))

    async def channel(self, server: Server, name: str = "general", position: int = 0) -> Channel:
        return await self._save(Channel(server_id=server.id, name=name, position=position))

    async def role(self, server: Server, name: str = "Member", position: int = 0, **grants) -> Role:
        return await self._save(Role(server_id=server.id, name=name, position=position, **grants))

    async def assign(self, server: Server, user: User, *roles: Role) -> None:
        for role in roles:
            self.session.add(RoleAssignment(server_id=server.id, user_id=user.id, role_id=role.id))
        await self.session.commit()

    async def override(
        self,
        channel: Channel,
        *,
        role: Role | None = None,
        user: User | None = None,
        allow=(),
        deny=(),
    ) -> ChannelPermissionOverride:
        return await self._save(ChannelPermissionOverride(
            channel_id=channel.id,
            role_id=role.id if role else None,
            user_id=user.id if user else None,
            allow=list(allow),
            deny=list(deny),
        ))


@pytest.fixture
def seed(test_session) -> Seeder:
    return Seeder(test_session)


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "username": user.username})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers

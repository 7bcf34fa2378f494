from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from starlette.exceptions import HTTPException as StarletteHTTPException

from firepit.api import servers, channels, roles, role_assignments, channel_permissions, health
from firepit.db.database import create_tables
from firepit.core.config import settings, logger
from firepit.core.middleware import (
    RequestContextMiddleware,
    http_exception_handler,
    validation_exception_handler,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await create_tables()
    logger.info(f"{settings.APP_NAME} started (env={settings.APP_ENV})")
    yield


app = FastAPI(
    title="Firepit API",
    description="Backend API for the Firepit chat application",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# Include routers
app.include_router(servers.router, prefix="/api/servers", tags=["Servers"])
app.include_router(channels.router, prefix="/api/channels", tags=["Channels"])
app.include_router(roles.router, prefix="/api/roles", tags=["Roles"])
app.include_router(role_assignments.router, prefix="/api/role-assignments", tags=["Role Assignments"])
app.include_router(channel_permissions.router, prefix="/api/channel-permissions", tags=["Channel Permissions"])
app.include_router(health.router, prefix="", tags=["Health"])

"""API dependencies."""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tareas.auth.context import resolve_principal
from tareas.auth.token import bearer_token
from tareas.db.base import async_session_factory
from tareas.engine.catalog import CatalogService
from tareas.engine.core import TareasEngine
from tareas.engine.errors import PermissionDenied
from tareas.integrations.storage import ObjectStorage
from tareas.models import Principal, Rol
from tareas.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger("tareas.api")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_principal(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_db_session),
) -> Principal:
    """Verify the bearer token and load the caller."""
    token = bearer_token(authorization)
    return await resolve_principal(token, session)


def require_roles(*roles: Rol):
    """Dependency factory: the caller must hold one of ``roles``."""

    async def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.rol not in roles:
            logger.info(f"Role {principal.rol.value} denied for user {principal.id}")
            raise PermissionDenied("No tienes permiso para realizar esta acción")
        return principal

    return _check


require_manager = require_roles(Rol.SUPER_ADMIN, Rol.ADMIN, Rol.ENCARGADO)


def get_notifier(request: Request) -> Optional[NotificationDispatcher]:
    return getattr(request.app.state, "notifier", None)


def get_storage(request: Request) -> Optional[ObjectStorage]:
    return getattr(request.app.state, "storage", None)


async def get_engine(
    session: AsyncSession = Depends(get_db_session),
    notifier: Optional[NotificationDispatcher] = Depends(get_notifier),
    storage: Optional[ObjectStorage] = Depends(get_storage),
) -> TareasEngine:
    return TareasEngine(session, notifier=notifier, storage=storage)


async def get_catalog(session: AsyncSession = Depends(get_db_session)) -> CatalogService:
    return CatalogService(session)

"""Authentication context helpers."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tareas.auth.token import decode_access_token
from tareas.db.repositories import UsuarioRepository
from tareas.engine.errors import AuthenticationError
from tareas.models import Principal

logger = logging.getLogger(__name__)


async def resolve_principal(token: str, session: AsyncSession) -> Principal:
    """
    Build the caller's Principal from a verified token.

    Role and department are read from the store rather than the claims, so a
    deactivated or re-assigned user takes effect on the next request.
    """
    claims = decode_access_token(token)
    found = await UsuarioRepository(session).get_with_departamento(claims["id"])
    if found is None:
        raise AuthenticationError("Usuario no encontrado")

    usuario, departamento = found
    if not usuario.is_active:
        logger.info(f"Rejected token for inactive user {usuario.id}")
        raise AuthenticationError("Usuario inactivo")

    return Principal(
        id=usuario.id,
        nombre=usuario.nombre,
        username=usuario.username,
        rol=usuario.rol,
        departamento_id=usuario.departamento_id,
        departamento_nombre=departamento.nombre if departamento else None,
        departamento_es_calidad=departamento.es_calidad if departamento else False,
    )

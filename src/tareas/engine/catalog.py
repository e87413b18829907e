"""Catalog operations - departments, users, push registrations and the log view."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tareas.auth.passwords import hash_password
from tareas.config import Settings, settings
from tareas.db.repositories import (
    BitacoraRepository,
    DepartamentoRepository,
    PushSubscriptionRepository,
    UsuarioRepository,
)
from tareas.engine.errors import NotFound, PermissionDenied, ValidationError
from tareas.models import (
    Departamento,
    EntradaBitacora,
    EstatusUsuario,
    Principal,
    Rol,
    SuscripcionPush,
    TipoDepartamento,
    Usuario,
)
from tareas.utils.time import utc_now

logger = logging.getLogger(__name__)

# Roles an ADMIN may provision
_ADMIN_PROVISIONABLE = {Rol.ENCARGADO, Rol.USUARIO, Rol.INVITADO}


class CatalogService:
    """Reference data the task engine depends on."""

    def __init__(self, session: AsyncSession, config: Settings = settings):
        self.session = session
        self.config = config
        self.departamentos = DepartamentoRepository(session)
        self.usuarios = UsuarioRepository(session)
        self.suscripciones = PushSubscriptionRepository(session)
        self.bitacora = BitacoraRepository(session)

    # Departments

    async def listar_departamentos(self) -> list[Departamento]:
        return await self.departamentos.list_all()

    async def crear_departamento(
        self,
        principal: Principal,
        nombre: str,
        tipo: TipoDepartamento = TipoDepartamento.OPERATIVO,
        es_calidad: bool = False,
    ) -> Departamento:
        self._require_super_admin(principal)
        nombre = nombre.strip()
        if not nombre:
            raise ValidationError("El nombre es obligatorio", {"nombre": ["Requerido"]})
        departamento = await self.departamentos.create(nombre, tipo, es_calidad)
        await self.session.commit()
        logger.info(f"Department created: {departamento.nombre} ({departamento.id})")
        return departamento

    async def actualizar_departamento(
        self,
        principal: Principal,
        departamento_id: int,
        nombre: Optional[str] = None,
        tipo: Optional[TipoDepartamento] = None,
        es_calidad: Optional[bool] = None,
    ) -> Departamento:
        self._require_super_admin(principal)
        values = {}
        if nombre is not None:
            if not nombre.strip():
                raise ValidationError("El nombre es obligatorio", {"nombre": ["Requerido"]})
            values["nombre"] = nombre.strip()
        if tipo is not None:
            values["tipo"] = tipo
        if es_calidad is not None:
            values["es_calidad"] = es_calidad

        departamento = await self.departamentos.update(departamento_id, **values)
        if departamento is None:
            raise NotFound("Departamento", departamento_id)
        await self.session.commit()
        return departamento

    # Users

    async def listar_usuarios(
        self,
        principal: Principal,
        departamento_id: Optional[int] = None,
        estatus: Optional[EstatusUsuario] = None,
    ) -> list[Usuario]:
        """SUPER_ADMIN sees everyone; other managers their own department."""
        if principal.rol not in Rol.managers():
            raise PermissionDenied("No tienes permiso para ver usuarios")
        if principal.rol != Rol.SUPER_ADMIN:
            departamento_id = principal.departamento_id
        return await self.usuarios.list(departamento_id=departamento_id, estatus=estatus)

    async def crear_usuario(
        self,
        principal: Principal,
        nombre: str,
        username: str,
        password: str,
        rol: Rol,
        departamento_id: Optional[int] = None,
    ) -> Usuario:
        """
        Provision a user.

        ADMIN may only create ENCARGADO, USUARIO or INVITADO, always inside
        its own department (INVITADO stays departmentless). SUPER_ADMIN and
        INVITADO accounts never carry a department; every other role needs
        one.
        """
        if principal.rol == Rol.ADMIN:
            if rol not in _ADMIN_PROVISIONABLE:
                raise PermissionDenied(f"Un ADMIN no puede crear usuarios {rol.value}")
            departamento_id = principal.departamento_id
        elif principal.rol != Rol.SUPER_ADMIN:
            raise PermissionDenied("No tienes permiso para crear usuarios")

        if rol in Rol.departmentless():
            departamento_id = None
        elif departamento_id is None:
            raise ValidationError(
                f"El rol {rol.value} requiere un departamento",
                {"departamentoId": ["Requerido"]},
            )
        elif await self.departamentos.get(departamento_id) is None:
            raise NotFound("Departamento", departamento_id)

        if not username.strip() or not nombre.strip():
            raise ValidationError(
                "Nombre y usuario son obligatorios",
                {"username": ["Requerido"], "nombre": ["Requerido"]},
            )
        if len(password) < 6:
            raise ValidationError(
                "La contraseña es demasiado corta", {"password": ["Mínimo 6 caracteres"]}
            )

        usuario = await self.usuarios.create(
            nombre=nombre.strip(),
            username=username.strip(),
            password_hash=hash_password(password),
            rol=rol,
            departamento_id=departamento_id,
            now=utc_now(),
        )
        await self.session.commit()
        logger.info(f"User created: {usuario.username} ({usuario.rol.value}) by {principal.username}")
        return usuario

    async def cambiar_estatus_usuario(
        self,
        principal: Principal,
        usuario_id: int,
        estatus: EstatusUsuario,
    ) -> Usuario:
        """Soft (de)activation. ADMIN may only touch its own department's non-admins."""
        objetivo = await self.usuarios.get(usuario_id)
        if objetivo is None:
            raise NotFound("Usuario", usuario_id)
        if principal.id == usuario_id:
            raise PermissionDenied("No puedes cambiar tu propio estatus")

        if principal.rol == Rol.ADMIN:
            if objetivo.rol not in _ADMIN_PROVISIONABLE or (
                objetivo.rol != Rol.INVITADO and not principal.in_department(objetivo.departamento_id)
            ):
                raise PermissionDenied("No puedes modificar este usuario")
        elif principal.rol != Rol.SUPER_ADMIN:
            raise PermissionDenied("No tienes permiso para modificar usuarios")

        usuario = await self.usuarios.set_estatus(usuario_id, estatus)
        await self.session.commit()
        return usuario

    # Push registrations

    async def suscribir(
        self,
        principal: Principal,
        usuario_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
    ) -> SuscripcionPush:
        """Register a push endpoint for the caller's own account."""
        if principal.id != usuario_id:
            raise PermissionDenied("Solo puedes registrar notificaciones para tu propia cuenta")
        if not endpoint or not p256dh or not auth:
            raise ValidationError("Suscripción incompleta", {"subscription": ["Requerido"]})
        suscripcion = await self.suscripciones.upsert(usuario_id, endpoint, p256dh, auth, utc_now())
        await self.session.commit()
        return suscripcion

    # Audit log view

    async def bitacora_reciente(self, principal: Principal) -> list[EntradaBitacora]:
        self._require_super_admin(principal)
        return await self.bitacora.latest(self.config.audit_log_limit)

    @staticmethod
    def _require_super_admin(principal: Principal) -> None:
        if principal.rol != Rol.SUPER_ADMIN:
            raise PermissionDenied("Solo SUPER_ADMIN puede realizar esta acción")

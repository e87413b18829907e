"""
Pytest fixtures for Tareas tests.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Ensure test config is set before importing tareas modules.
os.environ["TAREAS_DATABASE_URL"] = os.getenv(
    "TAREAS_TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)
os.environ.setdefault("TAREAS_ENV", "development")
os.environ.setdefault("TAREAS_REMINDERS_ENABLED", "false")

from tareas.auth.passwords import hash_password  # noqa: E402
from tareas.auth.token import create_access_token  # noqa: E402
from tareas.db import base as db_base  # noqa: E402
from tareas.db.base import Base  # noqa: E402
import tareas.db.tables  # noqa: E402,F401
from tareas.db.repositories import DepartamentoRepository, UsuarioRepository  # noqa: E402
from tareas.engine.core import TareasEngine  # noqa: E402
from tareas.integrations.storage import ObjectStorage  # noqa: E402
from tareas.models import (  # noqa: E402
    Departamento,
    EstatusUsuario,
    NotificationIntent,
    Principal,
    Rol,
    TipoDepartamento,
    Usuario,
)
from tareas.utils.time import utc_now  # noqa: E402

pytest_plugins = ("pytest_asyncio",)


class RecordingNotifier:
    """Stands in for NotificationDispatcher; keeps every intent handed to it."""

    def __init__(self):
        self.intents: list[NotificationIntent] = []

    def dispatch(self, intent: NotificationIntent) -> None:
        self.intents.append(intent)

    def titles(self) -> list[str]:
        return [i.title for i in self.intents]

    def clear(self) -> None:
        self.intents.clear()


class RecordingStorage(ObjectStorage):
    """Object storage that records deletes, optionally failing them."""

    def __init__(self, fail: bool = False):
        super().__init__("tareas")
        self.fail = fail
        self.deleted: list[str] = []

    async def delete(self, public_id: str) -> None:
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.deleted.append(public_id)


@dataclass
class Org:
    """A small organisation: three departments and one user per role."""

    ventas: Departamento
    calidad: Departamento
    operaciones: Departamento
    users: dict[str, Usuario] = field(default_factory=dict)
    principals: dict[str, Principal] = field(default_factory=dict)

    def __getattr__(self, name: str) -> Principal:
        try:
            return self.__dict__["principals"][name]
        except KeyError:
            raise AttributeError(name) from None

    def token(self, name: str) -> str:
        user = self.users[name]
        return create_access_token(user.id, user.rol, user.departamento_id)

    def headers(self, name: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token(name)}"}


def principal_for(usuario: Usuario, departamento: Departamento | None) -> Principal:
    return Principal(
        id=usuario.id,
        nombre=usuario.nombre,
        username=usuario.username,
        rol=usuario.rol,
        departamento_id=usuario.departamento_id,
        departamento_nombre=departamento.nombre if departamento else None,
        departamento_es_calidad=departamento.es_calidad if departamento else False,
    )


@pytest.fixture
async def session():
    """Provide a clean database session per test."""
    async with db_base.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with db_base.async_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_factory():
    return db_base.async_session_factory


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def storage_factory():
    return RecordingStorage


@pytest.fixture
def engine(session: AsyncSession, notifier, storage) -> TareasEngine:
    return TareasEngine(session, notifier=notifier, storage=storage)


@pytest.fixture
async def org(session: AsyncSession) -> Org:
    """
    Departments VENTAS, CONTROL DE CALIDAD (flagged) and OPERACIONES with:
    super_admin, admin, encargado, usuario, usuario2, invitado and
    inactivo in VENTAS; admin_calidad and usuario_calidad in CALIDAD;
    admin_ops, encargado_ops and usuario_ops in OPERACIONES.
    """
    departamentos = DepartamentoRepository(session)
    ventas = await departamentos.create("VENTAS", TipoDepartamento.OPERATIVO)
    calidad = await departamentos.create(
        "CONTROL DE CALIDAD", TipoDepartamento.ADMINISTRATIVO, es_calidad=True
    )
    operaciones = await departamentos.create("OPERACIONES", TipoDepartamento.OPERATIVO)
    await session.commit()

    by_id = {d.id: d for d in (ventas, calidad, operaciones)}
    usuarios = UsuarioRepository(session)
    password_hash = hash_password("secreto123")
    now = utc_now()

    seed_users = [
        ("super_admin", "Sofía Directora", Rol.SUPER_ADMIN, None),
        ("admin", "Andrés Gerente", Rol.ADMIN, ventas.id),
        ("encargado", "Elena Encargada", Rol.ENCARGADO, ventas.id),
        ("usuario", "Ulises Vendedor", Rol.USUARIO, ventas.id),
        ("usuario2", "Valeria Vendedora", Rol.USUARIO, ventas.id),
        ("invitado", "Iván Externo", Rol.INVITADO, None),
        ("inactivo", "Irene Baja", Rol.USUARIO, ventas.id),
        ("admin_calidad", "Carla Calidad", Rol.ADMIN, calidad.id),
        ("usuario_calidad", "Camilo Auditor", Rol.USUARIO, calidad.id),
        ("admin_ops", "Oscar Operaciones", Rol.ADMIN, operaciones.id),
        ("encargado_ops", "Olga Turno", Rol.ENCARGADO, operaciones.id),
        ("usuario_ops", "Omar Operador", Rol.USUARIO, operaciones.id),
    ]

    result = Org(ventas=ventas, calidad=calidad, operaciones=operaciones)
    for key, nombre, rol, departamento_id in seed_users:
        usuario = await usuarios.create(
            nombre=nombre,
            username=key,
            password_hash=password_hash,
            rol=rol,
            departamento_id=departamento_id,
            now=now,
        )
        result.users[key] = usuario
    await session.commit()

    inactivo = await usuarios.set_estatus(result.users["inactivo"].id, EstatusUsuario.INACTIVO)
    await session.commit()
    result.users["inactivo"] = inactivo

    for key, usuario in result.users.items():
        result.principals[key] = principal_for(usuario, by_id.get(usuario.departamento_id))
    return result


@pytest.fixture
def in_days():
    """Deadline helper: an aware UTC datetime ``days`` from now."""

    def _in_days(days: float):
        return (utc_now() + timedelta(days=days)).replace(microsecond=0)

    return _in_days


@pytest.fixture
async def client(session, notifier, storage):
    """Async test client with overridden dependencies."""
    from tareas.api.deps import get_db_session
    from tareas.main import app

    async def override_get_db_session():
        yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.state.notifier = notifier
    app.state.storage = storage

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.notifier = None
    app.state.storage = None
